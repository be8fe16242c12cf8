import unittest
from unittest.mock import patch

from comic_cms import comics
from comic_cms.comics import PageInput
from comic_cms.db import InMemoryDbClient
from comic_cms.editor import AUTOSAVE_IDLE, AUTOSAVE_SAVED, ComicEditor, EditorSessionStore
from comic_cms.errors import EditorError, StoreError
from comic_cms.images import ImageUpload
from comic_cms.storage import InMemoryStorageClient


class ComicEditorTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.editor = ComicEditor(db=self.db, storage=self.storage)

    def _add(self, *captions):
        for caption in captions:
            self.editor.insert_page(f"https://img.test/{caption}.png", caption)

    def _captions(self):
        return [page.caption for page in self.editor.pages]

    def test_insert_goes_after_current_and_moves_cursor(self):
        self._add("a", "b")
        self.editor.previous()
        self.editor.insert_page("https://img.test/c.png", "c")
        self.assertEqual(self._captions(), ["a", "c", "b"])
        self.assertEqual(self.editor.current_index, 1)

    def test_insert_requires_image_and_caption(self):
        with self.assertRaises(EditorError):
            self.editor.insert_page(None, "caption")
        with self.assertRaises(EditorError):
            self.editor.insert_page("https://img.test/a.png", "   ")
        self.assertEqual(self.editor.pages, [])

    def test_navigation_is_clamped(self):
        self._add("a", "b", "c")
        for _ in range(10):
            self.editor.next()
        self.assertEqual(self.editor.current_index, 2)
        for _ in range(10):
            self.editor.previous()
        self.assertEqual(self.editor.current_index, 0)

    def test_navigation_on_empty_editor(self):
        self.editor.next()
        self.editor.previous()
        self.assertEqual(self.editor.current_index, 0)
        self.assertIsNone(self.editor.current_page)

    def test_remove_current_clamps_cursor(self):
        self._add("a", "b", "c")
        self.editor.remove_current()
        self.assertEqual(self._captions(), ["a", "b"])
        self.assertEqual(self.editor.current_index, 1)
        self.editor.remove_current()
        self.editor.remove_current()
        self.assertEqual(self.editor.pages, [])
        self.assertEqual(self.editor.current_index, 0)
        self.editor.remove_current()

    def test_cancelled_caption_edit_keeps_caption(self):
        self._add("a")
        self.editor.start_editing_caption()
        self.editor.edit_text = "changed"
        self.editor.cancel_editing_caption()
        self.assertEqual(self._captions(), ["a"])
        self.assertFalse(self.editor.is_editing_caption)

    def test_committed_caption_edit_only_touches_current_page(self):
        self._add("a", "b", "c")
        self.editor.previous()
        self.editor.start_editing_caption()
        self.assertEqual(self.editor.edit_text, "b")
        self.editor.commit_caption("  B!  ")
        self.assertEqual(self._captions(), ["a", "B!", "c"])
        self.assertFalse(self.editor.is_editing_caption)

    def test_blank_caption_commit_is_ignored(self):
        self._add("a")
        self.editor.start_editing_caption()
        self.editor.commit_caption("   ")
        self.assertEqual(self._captions(), ["a"])
        self.assertTrue(self.editor.is_editing_caption)

    def test_navigation_leaves_caption_edit_mode(self):
        self._add("a", "b")
        self.editor.start_editing_caption()
        self.editor.previous()
        self.assertFalse(self.editor.is_editing_caption)

    def test_replace_current_image(self):
        self._add("a", "b")
        upload = ImageUpload(filename="new.png", data=b"png", content_type="image/png")
        self.editor.replace_current_image(upload)
        self.assertIs(self.editor.pages[1].image, upload)
        self.assertEqual(self.editor.pages[0].image, "https://img.test/a.png")

    def test_save_requires_pages(self):
        with self.assertRaises(EditorError):
            self.editor.save()

    def test_save_creates_then_updates(self):
        upload = ImageUpload(filename="p.png", data=b"png", content_type="image/png")
        self.editor.insert_page(upload, "first")
        comic_id = self.editor.save()

        self.assertEqual(self.editor.comic_id, comic_id)
        self.assertEqual(self.editor.title, comics.DEFAULT_TITLE)
        self.assertIsInstance(self.editor.pages[0].image, str)
        self.assertTrue(self.editor.pages[0].image.startswith(self.storage.base_url))

        self.editor.autosave = False
        self.editor.insert_page("https://img.test/b.png", "second")
        self.assertEqual(self.editor.save(), comic_id)
        stored = comics.get_comic(comic_id, db=self.db)
        self.assertEqual([p.caption for p in stored.pages], ["first", "second"])
        self.assertEqual(len(self.storage.stored_objects), 1)
        self.assertEqual(len(self.db.comics), 1)

    def test_failed_save_leaves_pages_unchanged(self):
        self._add("a", "b")
        before = list(self.editor.pages)
        with patch.object(self.db, "insert_comic", side_effect=StoreError("offline")):
            with self.assertRaises(EditorError) as ctx:
                self.editor.save()
        self.assertEqual(self.editor.pages, before)
        self.assertIsNone(self.editor.comic_id)
        self.assertIn("Failed to save comic: Error creating comic: offline", str(ctx.exception))
        self.assertEqual(self.editor.error, str(ctx.exception))

    def test_load_missing_comic(self):
        with self.assertRaises(EditorError):
            self.editor.load("missing")
        self.assertEqual(self.editor.error, "Comic not found")
        self.assertFalse(self.editor.is_edit_mode)

    def _stored_comic(self):
        return comics.save_comic(
            [PageInput(caption="one", image_url="https://img.test/1.png")],
            "Stored",
            db=self.db,
            storage=self.storage,
        )

    def test_failed_edit_save_leaves_pages_unchanged(self):
        comic_id = self._stored_comic()
        self.editor.autosave = False
        self.editor.load(comic_id)
        self.editor.remove_current()
        self._add("replacement")
        before = list(self.editor.pages)
        ids_before = [page.id for page in before]
        with patch.object(self.db, "delete_pages", side_effect=StoreError("offline")):
            with self.assertRaises(EditorError) as ctx:
                self.editor.save()
        self.assertIn("Error deleting removed pages: offline", str(ctx.exception))
        self.assertEqual(self.editor.pages, before)
        self.assertEqual([page.id for page in self.editor.pages], ids_before)
        self.assertTrue(ids_before[0].startswith("local-"))
        self.assertEqual(self.editor.comic_id, comic_id)
        stored = comics.get_comic(comic_id, db=self.db)
        self.assertEqual([p.caption for p in stored.pages], ["one"])

    def test_autosave_in_edit_mode(self):
        comic_id = self._stored_comic()
        self.editor.load(comic_id)
        self.editor.insert_page("https://img.test/2.png", "two")

        self.assertEqual(self.editor.autosave_status, AUTOSAVE_SAVED)
        stored = comics.get_comic(comic_id, db=self.db)
        self.assertEqual([p.caption for p in stored.pages], ["one", "two"])
        self.assertFalse(any(p.id.startswith("local-") for p in self.editor.pages))
        self.assertEqual(self.editor.take_autosave_status(), AUTOSAVE_SAVED)
        self.assertEqual(self.editor.take_autosave_status(), AUTOSAVE_IDLE)

    def test_autosave_failure_is_surfaced(self):
        comic_id = self._stored_comic()
        self.editor.load(comic_id)
        with patch.object(self.db, "update_comic_title", side_effect=StoreError("down")):
            self.editor.set_title("Renamed")
        self.assertEqual(self.editor.autosave_status, AUTOSAVE_IDLE)
        self.assertIn("Autosave failed", self.editor.error)
        self.assertEqual(self.editor.title, "Renamed")
        self.assertEqual(comics.get_comic(comic_id, db=self.db).title, "Stored")

    def test_no_autosave_when_disabled_or_creating(self):
        self._add("a")
        self.assertEqual(self.db.comics, {})

        comic_id = self._stored_comic()
        editor = ComicEditor(db=self.db, storage=self.storage, autosave=False)
        editor.load(comic_id)
        editor.insert_page("https://img.test/2.png", "two")
        self.assertEqual(len(comics.get_comic(comic_id, db=self.db).pages), 1)

    def test_new_comic_resets(self):
        comic_id = self._stored_comic()
        self.editor.load(comic_id)
        self.editor.new_comic()
        self.assertIsNone(self.editor.comic_id)
        self.assertEqual(self.editor.pages, [])
        self.assertEqual(self.editor.title, "")


class EditorSessionStoreTests(unittest.TestCase):
    def test_get_or_create(self):
        store = EditorSessionStore(
            lambda: ComicEditor(db=InMemoryDbClient(), storage=InMemoryStorageClient())
        )
        session_id, editor = store.get_or_create(None)
        same_id, same_editor = store.get_or_create(session_id)
        self.assertEqual(same_id, session_id)
        self.assertIs(same_editor, editor)
        other_id, _ = store.get_or_create("unknown")
        self.assertNotEqual(other_id, "unknown")

    def _store(self, max_sessions):
        return EditorSessionStore(
            lambda: ComicEditor(db=InMemoryDbClient(), storage=InMemoryStorageClient()),
            max_sessions=max_sessions,
        )

    def test_oldest_session_is_evicted(self):
        store = self._store(2)
        first, _ = store.create()
        second, _ = store.create()
        third, _ = store.create()
        self.assertEqual(len(store), 2)
        self.assertIsNone(store.get(first))
        self.assertIsNotNone(store.get(second))
        self.assertIsNotNone(store.get(third))

    def test_get_refreshes_session(self):
        store = self._store(2)
        first, editor = store.create()
        second, _ = store.create()
        self.assertIs(store.get(first), editor)
        store.create()
        self.assertIs(store.get(first), editor)
        self.assertIsNone(store.get(second))


if __name__ == "__main__":
    unittest.main()
