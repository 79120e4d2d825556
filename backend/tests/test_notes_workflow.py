"""
QuickNotes Backend — Notes Workflow Unit Tests
================================================

What:  Tests for NotesWorkflow (fetch, create, delete, form intents) and
       WorkflowRegistry.
How:   The record store and blob store are AsyncMocks spec'd on the gateway
       contracts, so every remote call and its order can be asserted.

What we test:
    ✅ fetch swaps in hydrated records, or leaves the list alone on failure
    ✅ signed URLs resolve concurrently
    ✅ create with/without attachment, images/{id}-{filename} paths
    ✅ validation failures make zero remote calls
    ✅ delete order: blob first, then record
    ✅ busy flag is exclusive and always released
"""

import asyncio
import logging
from datetime import timedelta

import pytest

from app.exceptions import (
    BlobStorageError,
    DataStoreError,
    NotFoundError,
    QuickNotesError,
    ValidationError,
    WorkflowBusyError,
)
from app.schemas.note import AttachmentUpload, NoteRecord
from app.services.notes_workflow import (
    NOTICE_CREATE_FAILED,
    NOTICE_DELETE_FAILED,
    NOTICE_FETCH_FAILED,
    NOTICE_MISSING_FIELDS,
    NotesWorkflow,
    WorkflowRegistry,
    attachment_path,
)


def png_upload(data, filename="photo.png"):
    return AttachmentUpload(filename=filename, content_type="image/png", data=data)


class TestAttachmentPath:
    def test_builds_images_prefix_with_id_and_name(self):
        assert attachment_path("123", "photo.png") == "images/123-photo.png"

    def test_strips_client_directories(self):
        assert attachment_path("123", "../../etc/photo.png") == "images/123-photo.png"
        assert attachment_path("123", "C:\\Users\\me\\photo.png") == "images/123-photo.png"

    def test_unusable_name_falls_back(self):
        assert attachment_path("123", "..") == "images/123-upload"
        assert attachment_path("123", "") == "images/123-upload"


class TestFetch:
    """Tests for fetch-and-hydrate."""

    @pytest.mark.asyncio
    async def test_fetch_hydrates_only_notes_with_images(self, workflow, note_gateway, blob_gateway, identity):
        note_gateway.list.return_value = [
            NoteRecord(id="1", title="A", content="a"),
            NoteRecord(id="2", title="B", content="b", image_path="images/2-x.png"),
        ]

        notes = await workflow.fetch()

        note_gateway.list.assert_awaited_once_with(identity.user_id)
        blob_gateway.get_signed_url.assert_awaited_once_with("images/2-x.png")
        assert [n.id for n in notes] == ["1", "2"]
        assert notes[0].image_url is None
        assert notes[1].image_url == "https://blobs.test/images/2-x.png?token=t"
        assert workflow.state.notes == notes
        assert workflow.state.busy is False

    @pytest.mark.asyncio
    async def test_fetch_preserves_store_order(self, workflow, note_gateway):
        note_gateway.list.return_value = [
            NoteRecord(id=str(i), title=f"t{i}", content="c") for i in (3, 1, 2)
        ]

        notes = await workflow.fetch()

        assert [n.id for n in notes] == ["3", "1", "2"]

    @pytest.mark.asyncio
    async def test_fetch_resolves_signed_urls_concurrently(self, workflow, note_gateway, blob_gateway):
        note_gateway.list.return_value = [
            NoteRecord(id=str(i), title="t", content="c", image_path=f"images/{i}-x.png")
            for i in range(3)
        ]
        in_flight = 0
        peak = 0

        async def resolve(path):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return f"https://blobs.test/{path}"

        blob_gateway.get_signed_url.side_effect = resolve

        await workflow.fetch()

        assert peak == 3

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_previous_list(self, workflow, note_gateway):
        previous = [NoteRecord(id="old", title="Old", content="kept")]
        workflow.state.notes = previous
        note_gateway.list.side_effect = DataStoreError()

        with pytest.raises(DataStoreError):
            await workflow.fetch()

        assert workflow.state.notes is previous
        assert workflow.state.busy is False
        assert workflow.state.notice == NOTICE_FETCH_FAILED

    @pytest.mark.asyncio
    async def test_one_failed_resolution_aborts_whole_fetch(self, workflow, note_gateway, blob_gateway):
        previous = [NoteRecord(id="old", title="Old", content="kept")]
        workflow.state.notes = previous
        note_gateway.list.return_value = [
            NoteRecord(id="1", title="A", content="a", image_path="images/1-ok.png"),
            NoteRecord(id="2", title="B", content="b", image_path="images/2-gone.png"),
        ]

        async def resolve(path):
            if "gone" in path:
                raise NotFoundError(resource="blob", resource_id=path)
            return f"https://blobs.test/{path}"

        blob_gateway.get_signed_url.side_effect = resolve

        with pytest.raises(NotFoundError):
            await workflow.fetch()

        assert workflow.state.notes is previous
        assert workflow.state.busy is False

    @pytest.mark.asyncio
    async def test_failed_resolution_cancels_pending_siblings(self, workflow, note_gateway, blob_gateway):
        note_gateway.list.return_value = [
            NoteRecord(id="1", title="A", content="a", image_path="images/1-slow.png"),
            NoteRecord(id="2", title="B", content="b", image_path="images/2-gone.png"),
        ]
        cancelled = []

        async def resolve(path):
            if "gone" in path:
                raise NotFoundError(resource="blob", resource_id=path)
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.append(path)
                raise
            return f"https://blobs.test/{path}"

        blob_gateway.get_signed_url.side_effect = resolve

        with pytest.raises(NotFoundError):
            await workflow.fetch()

        assert cancelled == ["images/1-slow.png"]
        assert workflow.state.busy is False

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped_and_logged(self, workflow, note_gateway, caplog):
        note_gateway.list.side_effect = RuntimeError("connection reset")

        with caplog.at_level(logging.ERROR, logger="app.services.notes_workflow"):
            with pytest.raises(QuickNotesError) as exc_info:
                await workflow.fetch()

        assert exc_info.value.message == NOTICE_FETCH_FAILED
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert "connection reset" in caplog.text
        assert workflow.state.busy is False


class TestCreate:
    """Tests for create-with-optional-attachment."""

    @pytest.mark.asyncio
    async def test_create_without_file(self, workflow, note_gateway, blob_gateway, identity):
        note_gateway.create.return_value = NoteRecord(id="n1", title="A", content="B")
        workflow.update_draft(title="A", content="B")

        note = await workflow.create()

        note_gateway.create.assert_awaited_once_with(identity.user_id, "A", "B")
        blob_gateway.upload.assert_not_awaited()
        note_gateway.update.assert_not_awaited()
        assert workflow.state.notes == [note]
        assert note.title == "A"
        assert note.content == "B"
        assert note.image_path is None

    @pytest.mark.asyncio
    async def test_create_with_file_uploads_and_attaches(
        self, workflow, note_gateway, blob_gateway, identity, sample_image_bytes
    ):
        note_gateway.create.return_value = NoteRecord(id="123", title="A", content="B")
        note_gateway.update.return_value = NoteRecord(
            id="123", title="A", content="B", image_path="images/123-photo.png"
        )
        workflow.update_draft(title="A", content="B")
        workflow.select_file(png_upload(sample_image_bytes))

        note = await workflow.create()

        blob_gateway.upload.assert_awaited_once_with(
            "images/123-photo.png", sample_image_bytes, "image/png"
        )
        note_gateway.update.assert_awaited_once_with(
            identity.user_id, "123", "images/123-photo.png"
        )
        assert note.image_path == "images/123-photo.png"
        assert workflow.state.notes == [note]

    @pytest.mark.asyncio
    async def test_create_then_fetch_resolves_image_url(
        self, workflow, note_gateway, blob_gateway, sample_image_bytes
    ):
        stored = NoteRecord(id="123", title="A", content="B", image_path="images/123-photo.png")
        note_gateway.create.return_value = NoteRecord(id="123", title="A", content="B")
        note_gateway.update.return_value = stored
        workflow.update_draft(title="A", content="B")
        workflow.select_file(png_upload(sample_image_bytes))
        await workflow.create()

        note_gateway.list.return_value = [stored]
        notes = await workflow.fetch()

        assert notes[0].image_path == "images/123-photo.png"
        assert notes[0].image_url

    @pytest.mark.asyncio
    async def test_create_clears_draft_and_selection(self, workflow, note_gateway, sample_image_bytes):
        note_gateway.create.return_value = NoteRecord(id="1", title="A", content="B")
        note_gateway.update.return_value = NoteRecord(
            id="1", title="A", content="B", image_path="images/1-photo.png"
        )
        workflow.update_draft(title="A", content="B")
        workflow.select_file(png_upload(sample_image_bytes))

        await workflow.create()

        assert workflow.state.draft_title == ""
        assert workflow.state.draft_content == ""
        assert workflow.state.pending_file is None

    @pytest.mark.asyncio
    async def test_create_appends_to_existing_list(self, workflow, note_gateway):
        existing = NoteRecord(id="0", title="Old", content="o")
        workflow.state.notes = [existing]
        note_gateway.create.return_value = NoteRecord(id="1", title="New", content="n")
        workflow.update_draft(title="New", content="n")

        await workflow.create()

        assert [n.id for n in workflow.state.notes] == ["0", "1"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "title,content",
        [("", "body"), ("title", ""), ("   ", "body"), ("title", "\n\t"), ("", "")],
    )
    async def test_blank_fields_make_no_remote_calls(
        self, workflow, note_gateway, blob_gateway, title, content
    ):
        workflow.update_draft(title=title, content=content)

        with pytest.raises(ValidationError, match="Please provide a title and content"):
            await workflow.create()

        assert note_gateway.mock_calls == []
        assert blob_gateway.mock_calls == []
        assert workflow.state.notice == NOTICE_MISSING_FIELDS
        assert workflow.state.busy is False
        assert workflow.state.draft_title == title

    @pytest.mark.asyncio
    async def test_upload_failure_leaves_list_and_logs_orphan(
        self, workflow, note_gateway, blob_gateway, sample_image_bytes, caplog
    ):
        note_gateway.create.return_value = NoteRecord(id="123", title="A", content="B")
        blob_gateway.upload.side_effect = BlobStorageError()
        workflow.update_draft(title="A", content="B")
        workflow.select_file(png_upload(sample_image_bytes))

        with caplog.at_level(logging.WARNING, logger="app.services.notes_workflow"):
            with pytest.raises(BlobStorageError):
                await workflow.create()

        note_gateway.update.assert_not_awaited()
        assert workflow.state.notes == []
        assert workflow.state.busy is False
        assert workflow.state.notice == NOTICE_CREATE_FAILED
        assert "Note 123 was created but its attachment was not linked" in caplog.text
        # The draft survives so the user can retry
        assert workflow.state.draft_title == "A"

    @pytest.mark.asyncio
    async def test_record_create_failure(self, workflow, note_gateway, blob_gateway):
        note_gateway.create.side_effect = DataStoreError()
        workflow.update_draft(title="A", content="B")

        with pytest.raises(DataStoreError):
            await workflow.create()

        blob_gateway.upload.assert_not_awaited()
        assert workflow.state.notes == []
        assert workflow.state.busy is False


class TestDelete:
    """Tests for request → confirm/cancel → delete-with-cleanup."""

    @pytest.fixture
    def listed(self, workflow):
        plain = NoteRecord(id="1", title="Plain", content="p")
        with_image = NoteRecord(id="2", title="Pic", content="q", image_path="images/2-a.png")
        workflow.state.notes = [plain, with_image]
        return plain, with_image

    def test_request_delete_unknown_note(self, workflow, listed):
        with pytest.raises(NotFoundError):
            workflow.request_delete("missing")
        assert workflow.state.pending_delete_id is None

    def test_request_then_cancel(self, workflow, listed):
        workflow.request_delete("1")
        assert workflow.state.pending_delete_id == "1"

        workflow.cancel_delete()

        assert workflow.state.pending_delete_id is None
        assert len(workflow.state.notes) == 2

    @pytest.mark.asyncio
    async def test_confirm_without_request(self, workflow, note_gateway, blob_gateway):
        with pytest.raises(ValidationError):
            await workflow.confirm_delete()
        assert note_gateway.mock_calls == []
        assert blob_gateway.mock_calls == []

    @pytest.mark.asyncio
    async def test_delete_without_image_only_deletes_record(
        self, workflow, listed, note_gateway, blob_gateway, identity
    ):
        workflow.request_delete("1")

        await workflow.confirm_delete()

        blob_gateway.delete.assert_not_awaited()
        note_gateway.delete.assert_awaited_once_with(identity.user_id, "1")
        assert [n.id for n in workflow.state.notes] == ["2"]
        assert workflow.state.pending_delete_id is None

    @pytest.mark.asyncio
    async def test_delete_with_image_deletes_blob_then_record(
        self, workflow, listed, note_gateway, blob_gateway, identity
    ):
        calls = []
        blob_gateway.delete.side_effect = lambda path: calls.append(("blob", path))
        note_gateway.delete.side_effect = lambda owner, note_id: calls.append(("record", note_id))
        workflow.request_delete("2")

        await workflow.confirm_delete()

        assert calls == [("blob", "images/2-a.png"), ("record", "2")]
        assert [n.id for n in workflow.state.notes] == ["1"]

    @pytest.mark.asyncio
    async def test_blob_delete_failure_keeps_record(self, workflow, listed, note_gateway, blob_gateway):
        blob_gateway.delete.side_effect = BlobStorageError()
        workflow.request_delete("2")

        with pytest.raises(BlobStorageError):
            await workflow.confirm_delete()

        note_gateway.delete.assert_not_awaited()
        assert len(workflow.state.notes) == 2
        assert workflow.state.notice == NOTICE_DELETE_FAILED
        assert workflow.state.busy is False
        assert workflow.state.pending_delete_id is None

    @pytest.mark.asyncio
    async def test_record_delete_failure_after_blob_leaves_stale_entry(
        self, workflow, listed, note_gateway, caplog
    ):
        note_gateway.delete.side_effect = DataStoreError()
        workflow.request_delete("2")

        with caplog.at_level(logging.WARNING, logger="app.services.notes_workflow"):
            with pytest.raises(DataStoreError):
                await workflow.confirm_delete()

        assert [n.id for n in workflow.state.notes] == ["1", "2"]
        assert "Image images/2-a.png was deleted but note 2 was not" in caplog.text
        assert workflow.state.busy is False


class TestBusyFlag:
    """At most one workflow in flight per session."""

    @pytest.mark.asyncio
    async def test_second_workflow_rejected_while_busy(self, workflow, note_gateway):
        release = asyncio.Event()

        async def slow_list(owner_id):
            await release.wait()
            return []

        note_gateway.list.side_effect = slow_list
        workflow.update_draft(title="A", content="B")

        fetching = asyncio.create_task(workflow.fetch())
        await asyncio.sleep(0)
        assert workflow.state.busy is True

        with pytest.raises(WorkflowBusyError):
            await workflow.create()
        note_gateway.create.assert_not_awaited()

        release.set()
        await fetching
        assert workflow.state.busy is False
        assert workflow.state.draft_title == "A"

    def test_form_and_delete_intents_rejected_while_busy(self, workflow):
        workflow.state.notes = [NoteRecord(id="1", title="t", content="c")]
        workflow.state.busy = True

        with pytest.raises(WorkflowBusyError):
            workflow.request_delete("1")
        with pytest.raises(WorkflowBusyError):
            workflow.clear_draft()

        assert workflow.state.pending_delete_id is None

    def test_ensure_idle(self, workflow):
        workflow.ensure_idle("save a note")

        workflow.state.busy = True
        with pytest.raises(WorkflowBusyError):
            workflow.ensure_idle("save a note")

    @pytest.mark.asyncio
    async def test_busy_released_after_success_and_failure(self, workflow, note_gateway):
        await workflow.fetch()
        assert workflow.state.busy is False

        note_gateway.list.side_effect = DataStoreError()
        with pytest.raises(DataStoreError):
            await workflow.fetch()
        assert workflow.state.busy is False


class TestFormIntents:
    def test_update_draft_keeps_omitted_fields(self, workflow):
        workflow.update_draft(title="T", content="C")
        workflow.update_draft(content="C2")

        assert workflow.state.draft_title == "T"
        assert workflow.state.draft_content == "C2"

    def test_select_file_rejects_non_image(self, workflow):
        upload = AttachmentUpload(filename="notes.txt", content_type="text/plain", data=b"hi")

        with pytest.raises(ValidationError, match="not supported"):
            workflow.select_file(upload)

        assert workflow.state.pending_file is None
        assert "not supported" in workflow.state.notice

    def test_select_file_rejects_empty(self, workflow):
        with pytest.raises(ValidationError, match="empty"):
            workflow.select_file(png_upload(b""))

    def test_select_file_rejects_oversized(self, workflow):
        with pytest.raises(ValidationError, match="exceeds maximum"):
            workflow.select_file(png_upload(b"x" * 1025))

    def test_select_none_clears_selection(self, workflow, sample_image_bytes):
        workflow.select_file(png_upload(sample_image_bytes))
        workflow.select_file(None)
        assert workflow.state.pending_file is None

    def test_clear_draft(self, workflow, sample_image_bytes):
        workflow.update_draft(title="T", content="C")
        workflow.select_file(png_upload(sample_image_bytes))

        workflow.clear_draft()

        assert workflow.state.draft_title == ""
        assert workflow.state.draft_content == ""
        assert workflow.state.pending_file is None

    def test_notice_is_one_shot(self, workflow):
        workflow.notify("Something happened")

        assert workflow.take_notice() == "Something happened"
        assert workflow.take_notice() is None

    def test_notify_keeps_existing_notice(self, workflow):
        workflow.state.notice = NOTICE_CREATE_FAILED
        workflow.notify("secondary message")
        assert workflow.take_notice() == NOTICE_CREATE_FAILED


class TestWorkflowRegistry:
    def make_registry(self, note_gateway, blob_gateway):
        return WorkflowRegistry(lambda user: NotesWorkflow(user, note_gateway, blob_gateway))

    def test_open_creates_once_per_token(self, identity, note_gateway, blob_gateway):
        registry = self.make_registry(note_gateway, blob_gateway)

        first, created = registry.open("tok", identity)
        again, created_again = registry.open("tok", identity)

        assert created is True
        assert created_again is False
        assert first is again
        assert len(registry) == 1

    def test_token_reused_by_another_user_gets_fresh_workflow(
        self, identity, other_identity, note_gateway, blob_gateway
    ):
        registry = self.make_registry(note_gateway, blob_gateway)
        first, _ = registry.open("tok", identity)

        second, created = registry.open("tok", other_identity)

        assert created is True
        assert second is not first
        assert second.user == other_identity

    def test_discard(self, identity, note_gateway, blob_gateway):
        registry = self.make_registry(note_gateway, blob_gateway)
        registry.open("tok", identity)

        registry.discard("tok")
        registry.discard(None)

        assert len(registry) == 0

    def test_idle_workflows_are_dropped(self, identity, other_identity, note_gateway, blob_gateway):
        now = 0.0
        registry = WorkflowRegistry(
            lambda user: NotesWorkflow(user, note_gateway, blob_gateway),
            idle_ttl=timedelta(minutes=10),
            clock=lambda: now,
        )
        registry.open("stale", identity)
        registry.open("active", other_identity)

        now = 400.0
        registry.open("active", other_identity)
        now = 700.0
        _, created = registry.open("active", other_identity)

        assert created is False
        assert len(registry) == 1

        _, reopened = registry.open("stale", identity)
        assert reopened is True
