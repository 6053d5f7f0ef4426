import base64

import pytest

from familytree.client.autosave import AutoSaveCoordinator
from familytree.client.avatars import decode_data_url, ensure_avatar_uploaded, is_pending_avatar
from familytree.client.persistence_client import PersistenceClient
from familytree.client.session import TreeEditingSession
from familytree.core.errors import InvalidInputError, UpstreamUnavailableError

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x01" * 12
PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()


@pytest.fixture
def client(api):
    return PersistenceClient(base_url="http://testserver/api", session=api)


@pytest.fixture
def session(client, chart, editor, scheduler):
    restored = []
    s = TreeEditingSession(
        "T1",
        client,
        chart,
        editor,
        family_name="Nash",
        autosave=AutoSaveCoordinator(client, "T1", delay_ms=2000, scheduler=scheduler),
        on_restored=restored.append,
    )
    s.restored = restored
    return s


def test_initialize_loads_existing_tree_and_enables_autosave(session, client, chart, editor, scheduler):
    client.save_tree("T1", [{"id": "1"}])

    response = session.initialize()

    assert response["data"] == [{"id": "1"}]
    assert chart.data == [{"id": "1"}]
    assert editor.callback is not None

    editor.edit([{"id": "1"}, {"id": "2"}])
    scheduler.advance(2)

    assert client.load_tree("T1")["data"] == [{"id": "1"}, {"id": "2"}]
    assert client.get_backups("T1")["count"] == 0


def test_initialize_new_tree_keeps_chart_empty(session, chart, editor):
    response = session.initialize()

    assert response["data"] == []
    assert chart.data is None
    assert editor.callback is not None


def test_manual_save_uploads_pending_avatars(session, client, chart, editor):
    editor.data = [
        {"id": "1", "data": {"first name": "Ada", "avatar": PNG_DATA_URL}},
        {"id": "2", "data": {"first name": "Bob", "avatar": ""}},
    ]

    result = session.manual_save({"note": "first"})

    assert result["metadata"]["version"] == 1
    assert result["metadata"]["familyName"] == "Nash"
    assert result["metadata"]["source"] == "manual_save"
    assert result["metadata"]["note"] == "first"
    assert result["metadata"]["imageCount"] == 1

    stored = client.load_tree("T1")["data"]
    avatar = stored[0]["data"]["avatar"]
    assert avatar.startswith("http://testserver/images/T1/avatar-")
    assert avatar.endswith(".png")
    assert client.list_images("T1")["count"] == 1
    assert chart.data == stored
    assert client.pending_changes is False


def test_manual_save_cancels_queued_autosave(session, client, editor, scheduler):
    session.initialize()
    editor.edit([{"id": "1"}])

    session.manual_save()
    scheduler.advance(10)

    doc = client.load_tree("T1")
    assert doc["metadata"]["version"] == 1
    assert "autoSavedAt" not in doc["metadata"]


def test_manual_save_offline_is_refused(session, client):
    client.is_online = False

    with pytest.raises(UpstreamUnavailableError):
        session.manual_save()


def test_restore_redraws_chart_and_calls_back(session, client, chart, editor):
    editor.data = [{"id": "old"}]
    session.manual_save()
    editor.data = [{"id": "new"}]
    session.manual_save()

    backups = session.list_backups()
    result = session.restore_backup(backups[0]["filename"])

    assert chart.data == [{"id": "old"}]
    assert chart.updates[-1] is True
    assert session.restored == [result]
    assert client.load_tree("T1")["metadata"]["restoredFrom"] == backups[0]["filename"]


def test_close_detaches_editor(session, editor):
    session.initialize()
    session.close()

    assert editor.callback is None


# ----------------------------------------------------------
# avatar helpers
# ----------------------------------------------------------

def test_decode_data_url():
    assert decode_data_url(PNG_DATA_URL) == (PNG_BYTES, "image/png")
    assert decode_data_url("data:,hello%20world") == (b"hello world", "text/plain")

    with pytest.raises(InvalidInputError):
        decode_data_url("https://example.com/a.png")


def test_pending_avatar_detection():
    assert is_pending_avatar(PNG_DATA_URL)
    assert is_pending_avatar(" blob:http://localhost/abc")
    assert not is_pending_avatar("/images/T1/a.png")
    assert not is_pending_avatar(None)


def test_blob_avatars_are_left_alone(client):
    person = {"id": "1", "avatar": "blob:http://localhost/abc"}

    assert ensure_avatar_uploaded(client, "T1", person) is False
    assert person["avatar"] == "blob:http://localhost/abc"


def test_rejected_avatar_upload_does_not_block(client):
    person = {"id": "1", "avatar": "data:text/plain;base64,aGVsbG8="}

    assert ensure_avatar_uploaded(client, "T1", person) is False
    assert person["avatar"].startswith("data:text/plain")
