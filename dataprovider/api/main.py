from dataprovider.api.memory_backend import create_memory_backend

DEMO_SEED = {
    "posts": [
        {"id": 1, "title": "Hello REST", "status": "published", "category_id": 1, "hit": 120},
        {"id": 2, "title": "Draft notes", "status": "draft", "category_id": 2, "hit": 4},
        {"id": 3, "title": "Rejected idea", "status": "rejected", "category_id": 1, "hit": 0},
    ],
    "categories": [
        {"id": 1, "title": "News"},
        {"id": 2, "title": "Guides"},
    ],
}

app = create_memory_backend(DEMO_SEED)
