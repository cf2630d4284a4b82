import unittest

from utils.progress import course_progress, flatten_micro_topics, subtopic_progress, topic_progress
from sample_data import sample_study_map


class TestProgress(unittest.TestCase):
    def setUp(self):
        self.topics = sample_study_map()["topics"]

    def test_flatten(self):
        ids = [m["id"] for m in flatten_micro_topics(self.topics)]
        self.assertEqual(ids, ["micro-dijkstra", "micro-bellman-ford", "micro-bfs"])

    def test_subtopic_and_topic(self):
        graphs = self.topics[0]
        self.assertEqual(subtopic_progress(graphs["subTopics"][0]), {"completed": 1, "total": 2, "percent": 50})
        self.assertEqual(topic_progress(graphs), {"completed": 1, "total": 3, "percent": 33})

    def test_empty_topic_is_zero_percent(self):
        self.assertEqual(topic_progress(self.topics[1]), {"completed": 0, "total": 0, "percent": 0})

    def test_course_breakdown(self):
        progress = course_progress(self.topics)
        self.assertEqual((progress["completed"], progress["total"], progress["percent"]), (1, 3, 33))
        self.assertEqual([t["topicId"] for t in progress["topics"]], ["topic-graphs", "topic-sorting"])
        self.assertEqual(
            [s["subTopicId"] for s in progress["topics"][0]["subTopics"]],
            ["subtopic-shortest-paths", "subtopic-traversal"],
        )

    def test_only_true_counts_as_completed(self):
        topics = [{"id": "t", "subTopics": [{"id": "s", "microTopics": [
            {"id": "a", "completed": "yes"}, {"id": "b", "completed": True}, {"id": "c"},
        ]}]}]
        self.assertEqual(course_progress(topics)["completed"], 1)

    def test_malformed_children_are_ignored(self):
        topics = [{"id": "t", "subTopics": None}, {"id": "u", "subTopics": ["bad"]}]
        self.assertEqual(course_progress(topics)["total"], 0)


if __name__ == '__main__':
    unittest.main()
