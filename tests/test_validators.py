import unittest

from pydantic import ValidationError

from models.request_models import (
    check_topic_tree, SaveCourseRequest, ReplaceTopicsRequest, QuizGenerationRequest,
    ResourceSearchRequest, AddResourceRequest, QuizResultRequest, RecordQuizRequest,
)
from sample_data import sample_study_map, sample_quiz, sample_quiz_result


def _quiz_payload(length):
    return {
        "courseId": "course-algo",
        "topics": [{
            "id": "topic-graphs",
            "title": "Graphs",
            "microTopics": [{"id": "micro-bfs", "title": "BFS", "description": "Breadth first", "examScopeIds": []}],
        }],
        "difficulty": "intro",
        "length": length,
        "questionType": "mcq",
    }


class TestTopicTree(unittest.TestCase):
    def test_valid_tree(self):
        check_topic_tree(sample_study_map()["topics"])

    def test_duplicate_sibling_ids(self):
        with self.assertRaises(ValueError) as ctx:
            check_topic_tree([{"id": "t1"}, {"id": "t1"}])
        self.assertIn("duplicated", str(ctx.exception))

    def test_same_id_under_different_parents_is_allowed(self):
        check_topic_tree([
            {"id": "t1", "subTopics": [{"id": "s1"}]},
            {"id": "t2", "subTopics": [{"id": "s1"}]},
        ])

    def test_empty_id(self):
        with self.assertRaises(ValueError):
            check_topic_tree([{"id": "  "}])
        with self.assertRaises(ValueError):
            check_topic_tree([{"title": "no id"}])

    def test_nested_duplicate_names_the_path(self):
        topics = [{"id": "t1", "subTopics": [
            {"id": "s1", "microTopics": [{"id": "m1"}, {"id": "m1"}]},
        ]}]
        with self.assertRaises(ValueError) as ctx:
            check_topic_tree(topics)
        self.assertIn("topics[0].subTopics[0].microTopics[1]", str(ctx.exception))

    def test_children_must_be_a_list(self):
        with self.assertRaises(ValueError):
            check_topic_tree([{"id": "t1", "subTopics": "s1"}])


class TestCourseRequests(unittest.TestCase):
    def test_save_course_round_trips_unknown_fields(self):
        study_map = sample_study_map()
        study_map["course"]["instructor"] = "Dr. Lee"
        request = SaveCourseRequest.model_validate({"studyMap": study_map})
        dumped = request.study_map.model_dump(by_alias=True, exclude_unset=True)
        self.assertEqual(dumped, study_map)

    def test_save_course_requires_course_id(self):
        study_map = sample_study_map()
        study_map["course"]["id"] = ""
        with self.assertRaises(ValidationError):
            SaveCourseRequest.model_validate({"studyMap": study_map})

    def test_save_course_rejects_duplicate_topics(self):
        study_map = sample_study_map()
        study_map["topics"].append({"id": "topic-graphs", "title": "Again"})
        with self.assertRaises(ValidationError):
            SaveCourseRequest.model_validate({"studyMap": study_map})

    def test_save_course_rejects_assignment_without_id(self):
        study_map = sample_study_map()
        study_map["assignments"].append({"title": "Problem set 2", "dueDate": "2025-10-01T00:00:00.000Z"})
        with self.assertRaises(ValidationError) as ctx:
            SaveCourseRequest.model_validate({"studyMap": study_map})
        self.assertIn("assignments[1].id", str(ctx.exception))

    def test_save_course_rejects_duplicate_exam_ids(self):
        study_map = sample_study_map()
        study_map["exams"].append({**study_map["exams"][0], "title": "Makeup midterm"})
        with self.assertRaises(ValidationError) as ctx:
            SaveCourseRequest.model_validate({"studyMap": study_map})
        self.assertIn("duplicated within its exam list", str(ctx.exception))

    def test_record_quiz_rejects_duplicate_question_ids(self):
        quiz = sample_quiz("quiz-1")
        quiz["questions"].append(dict(quiz["questions"][0]))
        with self.assertRaises(ValidationError):
            RecordQuizRequest.model_validate({"quiz": quiz})

    def test_record_quiz_accepts_unique_question_ids(self):
        request = RecordQuizRequest.model_validate({"quiz": sample_quiz("quiz-1")})
        self.assertEqual(request.quiz.questions[0]["id"], "quiz-1-q1")

    def test_replace_topics_accepts_empty_list(self):
        self.assertEqual(ReplaceTopicsRequest.model_validate({"topics": []}).topics, [])

    def test_add_resource_type_is_checked(self):
        with self.assertRaises(ValidationError):
            AddResourceRequest.model_validate({
                "topicId": "topic-graphs",
                "resource": {"title": "x", "url": "https://x", "summary": "x", "type": "podcast"},
            })

    def test_quiz_result_difficulty_is_checked(self):
        result = sample_quiz_result("r1")
        result["difficulty"] = "hard"
        with self.assertRaises(ValidationError):
            QuizResultRequest.model_validate(result)


class TestQuizRequest(unittest.TestCase):
    def test_length_bounds(self):
        self.assertEqual(QuizGenerationRequest.model_validate(_quiz_payload(1)).length, 1)
        self.assertEqual(QuizGenerationRequest.model_validate(_quiz_payload(20)).length, 20)
        for length in (0, 21, -3):
            with self.assertRaises(ValidationError):
                QuizGenerationRequest.model_validate(_quiz_payload(length))

    def test_length_must_be_an_integer(self):
        for length in ("5", 5.5):
            with self.assertRaises(ValidationError):
                QuizGenerationRequest.model_validate(_quiz_payload(length))

    def test_topics_required(self):
        payload = _quiz_payload(5)
        payload["topics"] = []
        with self.assertRaises(ValidationError):
            QuizGenerationRequest.model_validate(payload)

    def test_unknown_difficulty(self):
        payload = _quiz_payload(5)
        payload["difficulty"] = "expert"
        with self.assertRaises(ValidationError):
            QuizGenerationRequest.model_validate(payload)


class TestResourceSearchRequest(unittest.TestCase):
    def setUp(self):
        self.payload = {"courseTitle": "Algorithms", "topicTitle": "Graphs", "resourceType": "learn"}

    def test_max_results_defaults_to_ten(self):
        self.assertEqual(ResourceSearchRequest.model_validate(self.payload).max_results, 10)
        self.assertEqual(ResourceSearchRequest.model_validate({**self.payload, "maxResults": None}).max_results, 10)
        self.assertEqual(ResourceSearchRequest.model_validate({**self.payload, "maxResults": 3}).max_results, 3)

    def test_max_results_must_be_an_integer(self):
        for value in ("5", 2.5):
            with self.assertRaises(ValidationError):
                ResourceSearchRequest.model_validate({**self.payload, "maxResults": value})

    def test_invalid_resource_type(self):
        with self.assertRaises(ValidationError):
            ResourceSearchRequest.model_validate({**self.payload, "resourceType": "invalid"})

    def test_topic_title_required(self):
        with self.assertRaises(ValidationError):
            ResourceSearchRequest.model_validate({**self.payload, "topicTitle": ""})


if __name__ == '__main__':
    unittest.main()
