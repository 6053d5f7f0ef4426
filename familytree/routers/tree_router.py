# familytree/routers/tree_router.py

from typing import Any

from fastapi import APIRouter, Depends

from familytree.core.http_errors import to_http_exception
from familytree.core.tree_store import TreeStore
from familytree.dependencies import get_tree_store
from familytree.schemas.tree_schema import (
    BackupListOut,
    BackupOut,
    TreeAutosaveOut,
    TreeAutosaveRequest,
    TreeDeleteOut,
    TreeListOut,
    TreeOut,
    TreeRestoreOut,
    TreeSaveOut,
    TreeSaveRequest,
)

router = APIRouter(prefix="/api", tags=["Trees"])


# ============================================================
# INITIAL (seed data, bare list)
# ============================================================

@router.get("/initial/{tree_id}", response_model=list[Any])
def get_initial_tree(
    tree_id: str,
    store: TreeStore = Depends(get_tree_store),
):
    try:
        return store.load_initial(tree_id)
    except Exception as e:
        raise to_http_exception(e, "Failed to load initial data") from e


# ============================================================
# LIST TREES
# ============================================================

@router.get("/trees", response_model=TreeListOut)
def list_trees(store: TreeStore = Depends(get_tree_store)):
    try:
        trees = store.list_trees()
    except Exception as e:
        raise to_http_exception(e, "Failed to list trees") from e

    return TreeListOut(trees=trees, count=len(trees))


# ============================================================
# LOAD TREE (missing → empty document, still 200)
# ============================================================

@router.get("/trees/{tree_id}", response_model=TreeOut)
def get_tree(
    tree_id: str,
    store: TreeStore = Depends(get_tree_store),
):
    try:
        doc = store.load(tree_id)
    except Exception as e:
        raise to_http_exception(e, "Failed to load tree") from e

    return TreeOut(
        tree_id=tree_id,
        data=doc.data,
        metadata=doc.metadata,
        last_modified=doc.last_modified,
    )


# ============================================================
# FULL SAVE (backup + prune)
# ============================================================

@router.post("/trees/{tree_id}", response_model=TreeSaveOut)
def save_tree(
    tree_id: str,
    payload: TreeSaveRequest,
    store: TreeStore = Depends(get_tree_store),
):
    try:
        doc, backup_created = store.save(tree_id, payload.data, payload.metadata)
    except Exception as e:
        raise to_http_exception(e, "Failed to save tree") from e

    return TreeSaveOut(
        tree_id=tree_id,
        message="Tree saved successfully",
        metadata=doc.metadata,
        last_modified=doc.last_modified,
        backup_created=backup_created,
    )


# ============================================================
# AUTOSAVE (no backup, no prune)
# ============================================================

@router.put("/trees/{tree_id}/autosave", response_model=TreeAutosaveOut)
def autosave_tree(
    tree_id: str,
    payload: TreeAutosaveRequest,
    store: TreeStore = Depends(get_tree_store),
):
    try:
        doc = store.autosave(tree_id, payload.data)
    except Exception as e:
        raise to_http_exception(e, "Failed to auto-save tree") from e

    return TreeAutosaveOut(
        tree_id=tree_id,
        message="Tree auto-saved successfully",
        last_modified=doc.last_modified,
        backup_created=False,
    )


# ============================================================
# DELETE (with _DELETED_ backup)
# ============================================================

@router.delete("/trees/{tree_id}", response_model=TreeDeleteOut)
def delete_tree(
    tree_id: str,
    store: TreeStore = Depends(get_tree_store),
):
    try:
        backup_created = store.delete(tree_id)
    except Exception as e:
        raise to_http_exception(
            e, "Failed to delete tree", not_found="Tree not found", treeId=tree_id
        ) from e

    return TreeDeleteOut(
        tree_id=tree_id,
        message="Tree deleted successfully",
        backup_created=backup_created,
    )


# ============================================================
# BACKUPS
# ============================================================

@router.get("/trees/{tree_id}/backups", response_model=BackupListOut)
def list_backups(
    tree_id: str,
    store: TreeStore = Depends(get_tree_store),
):
    try:
        records = store.list_backups(tree_id)
    except Exception as e:
        raise to_http_exception(e, "Failed to list backups") from e

    backups = [
        BackupOut(
            filename=r.filename,
            timestamp=r.timestamp,
            human_date=r.human_date,
            tag=r.tag,
            size=r.size,
        )
        for r in records
    ]
    return BackupListOut(tree_id=tree_id, backups=backups, count=len(backups))


@router.post("/trees/{tree_id}/restore/{backup_filename}", response_model=TreeRestoreOut)
def restore_tree(
    tree_id: str,
    backup_filename: str,
    store: TreeStore = Depends(get_tree_store),
):
    try:
        doc = store.restore(tree_id, backup_filename)
    except Exception as e:
        raise to_http_exception(
            e, "Failed to restore from backup", not_found="Backup file not found"
        ) from e

    return TreeRestoreOut(
        tree_id=tree_id,
        message=f"Tree restored from backup: {backup_filename}",
        data=doc.data,
        metadata=doc.metadata,
        last_modified=doc.last_modified,
    )
