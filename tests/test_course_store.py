import asyncio
import gc
import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from utils.exceptions import NotFoundError, StorageError
from utils.file_storage import CourseStore, DATA_FILE_NAME, read_json_file, write_json_file
from sample_data import sample_study_map, sample_quiz, sample_quiz_result


class TestCourseStoreMemory(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = CourseStore()

    async def test_list_empty(self):
        self.assertEqual(await self.store.list(), [])

    async def test_save_and_list(self):
        study_map = sample_study_map()
        record = await self.store.save_course(study_map)

        courses = await self.store.list()
        self.assertEqual(len(courses), 1)
        self.assertEqual(record["course"]["id"], "course-algo")
        for field in ("course", "topics", "assignments", "resources", "exams"):
            self.assertEqual(courses[0][field], study_map[field])
        self.assertEqual(courses[0]["quizHistory"], [])
        self.assertIn("lastUpdated", courses[0])

    async def test_overwrite_is_last_write_wins(self):
        await self.store.save_course(sample_study_map())
        await self.store.record_quiz("course-algo", sample_quiz("quiz-1"))

        renamed = sample_study_map()
        renamed["course"]["name"] = "Advanced Algorithms"
        renamed["topics"] = []
        await self.store.save_course(renamed)

        courses = await self.store.list()
        self.assertEqual(len(courses), 1)
        self.assertEqual(courses[0]["course"]["name"], "Advanced Algorithms")
        self.assertEqual(courses[0]["topics"], [])
        # History survives an overwrite
        self.assertEqual([q["quizId"] for q in courses[0]["quizHistory"]], ["quiz-1"])

    async def test_list_keeps_insertion_order(self):
        for course_id in ("c3", "c1", "c2"):
            await self.store.save_course(sample_study_map(course_id))
        await self.store.save_course(sample_study_map("c1"))

        ids = [c["course"]["id"] for c in await self.store.list()]
        self.assertEqual(ids, ["c3", "c1", "c2"])

    async def test_replace_topics_changes_only_topics(self):
        before = await self.store.save_course(sample_study_map())
        new_topics = [{"id": "t1", "title": "Sorting", "subtopics": []}]

        after = await self.store.replace_topics("course-algo", new_topics)

        self.assertEqual(after["topics"], new_topics)
        for field in ("course", "assignments", "resources", "exams", "quizHistory"):
            self.assertEqual(after[field], before[field])

    async def test_mutations_on_missing_course_raise_not_found(self):
        with self.assertRaises(NotFoundError):
            await self.store.replace_topics("missing", [])
        with self.assertRaises(NotFoundError):
            await self.store.record_quiz("missing", sample_quiz("quiz-1"))
        with self.assertRaises(NotFoundError):
            await self.store.get("missing")
        with self.assertRaises(NotFoundError):
            await self.store.add_resource("missing", "topic-graphs", {"title": "x"})

    async def test_record_quiz_appends_in_call_order(self):
        await self.store.save_course(sample_study_map())
        for i in range(7):
            await self.store.record_quiz("course-algo", sample_quiz(f"quiz-{i}"))

        record = await self.store.get("course-algo")
        self.assertEqual([q["quizId"] for q in record["quizHistory"]], [f"quiz-{i}" for i in range(7)])

    async def test_concurrent_quiz_appends_are_serialized(self):
        await self.store.save_course(sample_study_map())
        await asyncio.gather(*[
            self.store.record_quiz("course-algo", sample_quiz(f"quiz-{i}")) for i in range(20)
        ])

        record = await self.store.get("course-algo")
        self.assertEqual(len(record["quizHistory"]), 20)
        self.assertEqual(len({q["quizId"] for q in record["quizHistory"]}), 20)

    async def test_delete_course_twice(self):
        await self.store.save_course(sample_study_map())

        self.assertTrue(await self.store.delete_course("course-algo"))
        self.assertFalse(await self.store.delete_course("course-algo"))
        self.assertEqual(await self.store.list(), [])

    async def test_course_locks_are_released(self):
        for i in range(50):
            await self.store.save_course(sample_study_map(f"course-{i}"))
            await self.store.record_quiz(f"course-{i}", sample_quiz("quiz-1"))
            await self.store.delete_course(f"course-{i}")
        await self.store.delete_course("never-saved")
        gc.collect()

        self.assertEqual(len(self.store._locks), 0)
        self.assertEqual(await self.store.list(), [])

    async def test_returned_records_are_copies(self):
        await self.store.save_course(sample_study_map())
        record = await self.store.get("course-algo")
        record["topics"].clear()
        record["course"]["name"] = "changed"

        fresh = await self.store.get("course-algo")
        self.assertEqual(len(fresh["topics"]), 2)
        self.assertEqual(fresh["course"]["name"], "Algorithms")

    async def test_quiz_results_newest_first_and_delete(self):
        await self.store.save_course(sample_study_map())
        await self.store.save_quiz_result("course-algo", sample_quiz_result("r1"))
        await self.store.save_quiz_result("course-algo", sample_quiz_result("r2"))

        record = await self.store.get("course-algo")
        self.assertEqual([r["id"] for r in record["quizResults"]], ["r2", "r1"])

        updated = await self.store.delete_quiz_result("course-algo", "r1")
        self.assertEqual([r["id"] for r in updated["quizResults"]], ["r2"])

        with self.assertRaises(NotFoundError) as ctx:
            await self.store.delete_quiz_result("course-algo", "r1")
        self.assertEqual(ctx.exception.error_code, "QUIZ_RESULT_NOT_FOUND")

    async def test_add_resource_to_microtopic(self):
        await self.store.save_course(sample_study_map())
        record, stored = await self.store.add_resource(
            "course-algo",
            "micro-dijkstra",
            {"title": "Dijkstra walkthrough", "url": "https://example.com/d", "summary": "Visual", "type": "video"},
        )

        self.assertTrue(stored["id"].startswith("resource-"))
        self.assertIn("addedAt", stored)
        self.assertEqual(record["resources"]["micro-dijkstra"], [stored])
        # Existing topic resources untouched
        self.assertEqual(len(record["resources"]["topic-graphs"]), 1)

    async def test_add_resource_keeps_supplied_id(self):
        await self.store.save_course(sample_study_map())
        _, stored = await self.store.add_resource(
            "course-algo", "topic-graphs",
            {"id": "res-2", "title": "Notes", "url": "https://example.com/n", "summary": "Notes", "type": "article"},
        )
        self.assertEqual(stored["id"], "res-2")

    async def test_add_resource_unknown_topic(self):
        await self.store.save_course(sample_study_map())
        with self.assertRaises(NotFoundError) as ctx:
            await self.store.add_resource("course-algo", "topic-nope", {"title": "x"})
        self.assertEqual(ctx.exception.error_code, "TOPIC_NOT_FOUND")

    async def test_dangling_resource_keys_are_allowed(self):
        study_map = sample_study_map()
        study_map["resources"]["topic-deleted"] = []
        with self.assertLogs("utils.file_storage", level="WARNING"):
            record = await self.store.save_course(study_map)
        self.assertIn("topic-deleted", record["resources"])


class TestCourseStoreFile(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.data_file = Path(self.tmp_dir) / DATA_FILE_NAME
        self.store = CourseStore(self.data_file)

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    async def test_persists_and_reloads(self):
        await self.store.save_course(sample_study_map("c2"))
        await self.store.save_course(sample_study_map("c1"))
        await self.store.record_quiz("c1", sample_quiz("quiz-1"))
        await self.store.close()

        document = read_json_file(self.data_file)
        self.assertEqual(document["courseOrder"], ["c2", "c1"])

        reloaded = CourseStore(self.data_file)
        reloaded.load()
        courses = await reloaded.list()
        self.assertEqual([c["course"]["id"] for c in courses], ["c2", "c1"])
        self.assertEqual(courses[1]["quizHistory"][0]["quizId"], "quiz-1")

    async def test_delete_is_persisted(self):
        await self.store.save_course(sample_study_map("c1"))
        await self.store.delete_course("c1")

        reloaded = CourseStore(self.data_file)
        reloaded.load()
        self.assertEqual(await reloaded.list(), [])

    async def test_failed_write_rolls_back(self):
        await self.store.save_course(sample_study_map())

        with mock.patch("utils.file_storage.write_json_file", return_value=False):
            with self.assertRaises(StorageError):
                await self.store.replace_topics("course-algo", [])
            with self.assertRaises(StorageError):
                await self.store.save_course(sample_study_map("course-new"))
            with self.assertRaises(StorageError):
                await self.store.delete_course("course-algo")

        courses = await self.store.list()
        self.assertEqual([c["course"]["id"] for c in courses], ["course-algo"])
        self.assertEqual(len(courses[0]["topics"]), 2)

    def test_corrupt_file_refuses_to_load(self):
        self.data_file.write_text("{not json", encoding="utf-8")
        with self.assertRaises(StorageError):
            CourseStore(self.data_file).load()

    def test_missing_file_is_empty_store(self):
        store = CourseStore(self.data_file)
        store.load()
        self.assertEqual(store._courses, {})

    def test_write_json_file_is_atomic_replace(self):
        self.assertTrue(write_json_file(self.data_file, {"courses": {}, "courseOrder": []}))
        self.assertTrue(write_json_file(self.data_file, {"courses": {"a": {}}, "courseOrder": ["a"]}))
        self.assertEqual(json.loads(self.data_file.read_text(encoding="utf-8"))["courseOrder"], ["a"])
        self.assertFalse(self.data_file.with_suffix(".tmp").exists())


class TestCourseStoreFromEnv(unittest.TestCase):
    def test_memory_backend(self):
        with mock.patch.dict(os.environ, {"STUDYMAP_STORAGE": "memory"}):
            store = CourseStore.from_env()
        self.assertFalse(store.persistent)

    def test_file_backend_uses_data_dir(self):
        tmp_dir = tempfile.mkdtemp()
        try:
            with mock.patch.dict(os.environ, {"STUDYMAP_STORAGE": "file", "STUDYMAP_DATA_DIR": tmp_dir}):
                store = CourseStore.from_env()
            self.assertEqual(store.data_file, Path(tmp_dir) / DATA_FILE_NAME)
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)

    def test_unknown_backend(self):
        with mock.patch.dict(os.environ, {"STUDYMAP_STORAGE": "redis"}):
            with self.assertRaises(StorageError):
                CourseStore.from_env()


if __name__ == '__main__':
    unittest.main()
