import unittest
from typing import Dict, List

from study_os.canvas.models import CanvasFile, CanvasFolder
from study_os.errors import CanvasApiError, MissingTokenError
from study_os.files.folder_access import FolderAccessChecker, FolderBrowser
from study_os.storage import MemoryStore, StudyStore

COURSE_ID = 4


def _folder(folder_id: int, name: str = "Week", files_count: int = 2, hidden: bool = False) -> CanvasFolder:
    return CanvasFolder(id=folder_id, name=name, full_name=name, files_count=files_count, hidden=hidden)


def _file(file_id: int) -> CanvasFile:
    return CanvasFile(
        id=file_id,
        display_name=f"f{file_id}.pdf",
        filename=f"f{file_id}.pdf",
        content_type="application/pdf",
        url="u",
        size=1,
        modified_at="2024-01-01T00:00:00Z",
        updated_at="2024-01-01T00:00:00Z",
    )


class FakeFolderSource:
    def __init__(self) -> None:
        self.folders: List[CanvasFolder] = []
        self.access_results: Dict[int, object] = {}
        self.folder_contents: Dict[int, object] = {}
        self.checked: List[int] = []
        self.folder_fetches: List[int] = []

    async def fetch_course_files(self, token: str, course_id: int) -> List[CanvasFile]:
        return [_file(1)]

    async def fetch_course_folders(self, token: str, course_id: int) -> List[CanvasFolder]:
        return list(self.folders)

    async def fetch_folder_files(self, token: str, folder_id: int) -> List[CanvasFile]:
        self.folder_fetches.append(folder_id)
        result = self.folder_contents.get(folder_id, [])
        if isinstance(result, Exception):
            raise result
        return result

    async def test_folder_access(self, token: str, folder_id: int) -> bool:
        self.checked.append(folder_id)
        result = self.access_results.get(folder_id, True)
        if isinstance(result, Exception):
            raise result
        return result


class FolderAccessCheckerTests(unittest.IsolatedAsyncioTestCase):
    async def test_only_forbidden_folders_are_restricted(self) -> None:
        source = FakeFolderSource()
        source.access_results = {1: True, 2: False, 3: OSError("network down")}
        folders = [_folder(1), _folder(2), _folder(3)]

        restricted = await FolderAccessChecker(source).classify("token", folders)

        self.assertEqual(restricted, {2})

    async def test_ineligible_folders_are_not_checked(self) -> None:
        source = FakeFolderSource()
        folders = [_folder(1, "course files"), _folder(2, hidden=True), _folder(3, files_count=0), _folder(4)]

        await FolderAccessChecker(source).classify("token", folders)

        self.assertEqual(source.checked, [4])


class FolderBrowserTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.source = FakeFolderSource()
        self.store = StudyStore(MemoryStore())
        self.store.save_canvas_token("token")
        self.browser = FolderBrowser(self.source, self.store, COURSE_ID)

    async def test_load_requires_token(self) -> None:
        browser = FolderBrowser(self.source, StudyStore(MemoryStore()), COURSE_ID)
        with self.assertRaises(MissingTokenError):
            await browser.load()

    async def test_restricted_folder_cannot_be_expanded(self) -> None:
        self.source.folders = [_folder(1), _folder(2)]
        self.source.access_results = {2: False}
        await self.browser.load()

        self.assertEqual(await self.browser.expand(2), [])
        self.assertNotIn(2, self.browser.expanded)
        self.assertEqual(self.source.folder_fetches, [])

    async def test_expand_memoises_folder_listing(self) -> None:
        self.source.folders = [_folder(1)]
        self.source.folder_contents = {1: [_file(10)]}
        await self.browser.load()

        await self.browser.expand(1)
        self.browser.collapse(1)
        files = await self.browser.expand(1)

        self.assertEqual([f.id for f in files], [10])
        self.assertEqual(self.source.folder_fetches, [1])
        self.assertIn(1, self.browser.expanded)

    async def test_empty_listing_for_nonempty_folder_marks_restricted(self) -> None:
        self.source.folders = [_folder(1, files_count=3)]
        self.source.folder_contents = {1: []}
        await self.browser.load()

        await self.browser.expand(1)

        self.assertIn(1, self.browser.restricted)

    async def test_forbidden_expansion_marks_restricted(self) -> None:
        self.source.folders = [_folder(1)]
        self.source.folder_contents = {1: CanvasApiError(403)}
        await self.browser.load()

        self.assertEqual(await self.browser.expand(1), [])
        self.assertIn(1, self.browser.restricted)

    async def test_server_error_on_expansion_does_not_restrict(self) -> None:
        self.source.folders = [_folder(1)]
        self.source.folder_contents = {1: CanvasApiError(500)}
        await self.browser.load()

        await self.browser.expand(1)

        self.assertNotIn(1, self.browser.restricted)

    async def test_reload_rebuilds_restricted_set(self) -> None:
        self.source.folders = [_folder(1)]
        self.source.folder_contents = {1: []}
        await self.browser.load()
        await self.browser.expand(1)
        self.assertIn(1, self.browser.restricted)

        self.source.folder_contents = {1: [_file(5)]}
        await self.browser.load()

        self.assertEqual(self.browser.restricted, set())
        self.assertEqual(self.browser.expanded, set())


if __name__ == "__main__":
    unittest.main()
