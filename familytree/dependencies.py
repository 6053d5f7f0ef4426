from fastapi import Request

from familytree.core.tree_store import TreeStore
from familytree.storage import ImageStore


# ============================================================
# STORE DEPS (one instance per app, set up in create_app)
# ============================================================

def get_tree_store(request: Request) -> TreeStore:
    return request.app.state.tree_store


def get_image_store(request: Request) -> ImageStore:
    return request.app.state.image_store
