import io
import unittest
from unittest.mock import patch

from PIL import Image as PIL_Image

from comic_cms import comics
from comic_cms.comics import PageInput
from comic_cms.db import InMemoryDbClient, PageRecord
from comic_cms.errors import ComicPersistenceError, StoreError
from comic_cms.images import ImageUpload
from comic_cms.storage import InMemoryStorageClient


def _png_bytes() -> bytes:
    buf = io.BytesIO()
    PIL_Image.new("RGB", (4, 4), "red").save(buf, format="PNG")
    return buf.getvalue()


class PersistenceClientTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()

    def _save(self, pages, title="Title", **kwargs):
        return comics.save_comic(
            pages, title, db=self.db, storage=self.storage, **kwargs
        )

    def test_save_then_get_keeps_order_and_captions(self):
        pages = [
            PageInput(caption="one", image_url="https://img.test/1.png"),
            PageInput(caption="two", image_url="https://img.test/2.png"),
            PageInput(caption="three", image_url="https://img.test/3.png"),
        ]
        comic_id = self._save(pages)

        comic = comics.get_comic(comic_id, db=self.db)
        self.assertEqual(comic.title, "Title")
        self.assertEqual([p.caption for p in comic.pages], ["one", "two", "three"])
        self.assertEqual([p.page_number for p in comic.pages], [1, 2, 3])
        self.assertEqual(comic.pages[1].image_url, "https://img.test/2.png")

    def test_save_uploads_local_images_under_comic_prefix(self):
        image = ImageUpload(filename="panel.png", data=_png_bytes(), content_type="image/png")
        comic_id = self._save([PageInput(caption="one", image=image)])

        self.assertEqual(len(self.storage.stored_objects), 1)
        path = next(iter(self.storage.stored_objects))
        self.assertTrue(path.startswith(f"{comic_id}/"))
        self.assertTrue(path.endswith("-panel.png"))
        comic = comics.get_comic(comic_id, db=self.db)
        self.assertEqual(comic.pages[0].image_url, self.storage.public_url(path))

    def test_short_ids(self):
        comic_id = self._save([], id_style="short", id_length=8)
        self.assertEqual(len(comic_id), 8)
        self.assertTrue(comic_id.isalnum())
        self.assertEqual(comic_id, comic_id.lower())

    def test_get_orders_pages_regardless_of_storage_order(self):
        self.db.insert_comic("c1", "Stored")
        self.db.insert_pages(
            [
                PageRecord(id="p3", comic_id="c1", page_number=3, caption="c"),
                PageRecord(id="p1", comic_id="c1", page_number=1, caption="a"),
                PageRecord(id="p2", comic_id="c1", page_number=2, caption="b"),
            ]
        )
        comic = comics.get_comic("c1", db=self.db)
        self.assertEqual([p.page_number for p in comic.pages], [1, 2, 3])
        self.assertEqual([p.caption for p in comic.pages], ["a", "b", "c"])

    def test_get_missing_comic_returns_none(self):
        self.assertIsNone(comics.get_comic("missing", db=self.db))

    def test_update_diffs_page_sets(self):
        comic_id = self._save(
            [
                PageInput(caption="one", image_url="https://img.test/1.png"),
                PageInput(caption="two", image_url="https://img.test/2.png"),
                PageInput(caption="three", image_url="https://img.test/3.png"),
            ]
        )
        first, second, third = comics.get_comic(comic_id, db=self.db).pages

        comics.update_comic(
            comic_id,
            [
                PageInput(id=third.id, caption="three", image_url=third.image_url),
                PageInput(id="local-new", caption="new", image_url="https://img.test/4.png"),
                PageInput(id=first.id, caption="one edited", image_url=first.image_url),
            ],
            "Renamed",
            db=self.db,
            storage=self.storage,
        )

        comic = comics.get_comic(comic_id, db=self.db)
        self.assertEqual(comic.title, "Renamed")
        self.assertEqual([p.caption for p in comic.pages], ["three", "new", "one edited"])
        self.assertEqual([p.page_number for p in comic.pages], [1, 2, 3])
        self.assertEqual(comic.pages[0].id, third.id)
        self.assertEqual(comic.pages[2].id, first.id)
        self.assertNotEqual(comic.pages[1].id, "local-new")
        self.assertNotIn(second.id, self.db.pages)

    def test_update_with_repeated_page_id_keeps_every_page(self):
        comic_id = self._save(
            [PageInput(caption="one", image_url="https://img.test/1.png")]
        )
        (page,) = comics.get_comic(comic_id, db=self.db).pages

        comics.update_comic(
            comic_id,
            [
                PageInput(id=page.id, caption="first copy", image_url=page.image_url),
                PageInput(id=page.id, caption="second copy", image_url=page.image_url),
            ],
            "Twice",
            db=self.db,
            storage=self.storage,
        )

        comic = comics.get_comic(comic_id, db=self.db)
        self.assertEqual([p.caption for p in comic.pages], ["first copy", "second copy"])
        self.assertEqual([p.page_number for p in comic.pages], [1, 2])
        self.assertEqual(comic.pages[0].id, page.id)
        self.assertNotEqual(comic.pages[1].id, page.id)

    def test_update_with_no_pages_empties_comic(self):
        comic_id = self._save(
            [PageInput(caption="one", image_url="https://img.test/1.png")]
        )
        comics.update_comic(comic_id, [], "Title", db=self.db, storage=self.storage)
        self.assertEqual(comics.get_comic(comic_id, db=self.db).pages, [])

    def test_update_missing_comic_fails(self):
        with self.assertRaises(ComicPersistenceError) as ctx:
            comics.update_comic("missing", [], "x", db=self.db, storage=self.storage)
        self.assertIn("Failed to update comic: Error updating comic title", str(ctx.exception))

    def test_failed_page_insert_leaves_orphaned_comic(self):
        with patch.object(self.db, "insert_pages", side_effect=StoreError("boom")):
            with self.assertRaises(ComicPersistenceError) as ctx:
                self._save([PageInput(caption="one", image_url="https://img.test/1.png")])
        self.assertEqual(
            str(ctx.exception), "Failed to save comic: Error creating pages: boom"
        )
        self.assertEqual(len(self.db.comics), 1)
        self.assertEqual(self.db.pages, {})

    def test_failed_upload_is_reported(self):
        image = ImageUpload(filename="panel.png", data=b"x", content_type="image/png")
        with patch.object(self.storage, "upload_bytes", side_effect=StoreError("denied")):
            with self.assertRaises(ComicPersistenceError) as ctx:
                self._save([PageInput(caption="one", image=image)])
        self.assertIn("Error uploading image: denied", str(ctx.exception))

    def test_failed_read_is_wrapped(self):
        with patch.object(self.db, "list_pages", side_effect=StoreError("timeout")):
            self.db.insert_comic("c1", "x")
            with self.assertRaises(ComicPersistenceError) as ctx:
                comics.get_comic("c1", db=self.db)
        self.assertEqual(
            str(ctx.exception), "Failed to get comic: Error fetching pages: timeout"
        )

    def test_upload_page_image_requires_comic(self):
        image = ImageUpload(filename="panel.png", data=b"x", content_type="image/png")
        self.assertIsNone(
            comics.upload_page_image("missing", image, db=self.db, storage=self.storage)
        )

    def test_share_links(self):
        links = comics.share_links("http://testserver/", "abc")
        self.assertEqual(links.view_url, "http://testserver/comic/abc")
        self.assertEqual(links.edit_url, "http://testserver/?id=abc")


if __name__ == "__main__":
    unittest.main()
