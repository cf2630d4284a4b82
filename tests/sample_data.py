"""Shared study map fixtures for the test suites."""

import copy

_STUDY_MAP = {
    "course": {
        "id": "course-algo",
        "name": "Algorithms",
        "createdAt": "2024-01-01T00:00:00Z",
        "courseNumber": "CS 3510",
        "term": "Fall 2024",
    },
    "topics": [
        {
            "id": "topic-graphs",
            "title": "Graphs",
            "description": "Graph algorithms",
            "tags": [],
            "subTopics": [
                {
                    "id": "subtopic-shortest-paths",
                    "title": "Shortest Paths",
                    "description": "",
                    "microTopics": [
                        {"id": "micro-dijkstra", "title": "Dijkstra", "description": "Greedy SSSP",
                         "tags": [], "examScopeIds": ["exam-1"], "completed": True},
                        {"id": "micro-bellman-ford", "title": "Bellman-Ford", "description": "Negative edges",
                         "tags": [], "examScopeIds": [], "completed": False},
                    ],
                },
                {
                    "id": "subtopic-traversal",
                    "title": "Traversal",
                    "description": "",
                    "microTopics": [
                        {"id": "micro-bfs", "title": "BFS", "description": "Breadth first",
                         "tags": [], "examScopeIds": [], "completed": False},
                    ],
                },
            ],
        },
        {
            "id": "topic-sorting",
            "title": "Sorting",
            "description": "Comparison sorts",
            "tags": [],
            "subTopics": [],
        },
    ],
    "assignments": [
        {"id": "hw-1", "title": "Homework 1", "dueDate": "2024-09-15T00:00:00.000Z",
         "type": "assignment", "relatedTopicIds": ["topic-graphs"]},
    ],
    "resources": {
        "topic-graphs": [
            {"id": "res-1", "title": "Graph video", "url": "https://example.com/graphs",
             "summary": "Intro to graphs", "type": "video"},
        ],
    },
    "exams": [
        {"id": "exam-1", "title": "Midterm", "description": "Graphs", "date": "2024-10-10",
         "relatedTopicIds": ["topic-graphs"]},
    ],
}


def sample_study_map(course_id: str = "course-algo") -> dict:
    study_map = copy.deepcopy(_STUDY_MAP)
    study_map["course"]["id"] = course_id
    return study_map


def sample_quiz(quiz_id: str) -> dict:
    return {
        "quizId": quiz_id,
        "generatedAt": "2024-09-01T12:00:00Z",
        "questions": [{"id": f"{quiz_id}-q1", "prompt": "What is BFS?", "type": "mcq"}],
    }


def sample_quiz_result(result_id: str, quiz_id: str = "quiz-1") -> dict:
    return {
        "id": result_id,
        "quizId": quiz_id,
        "completedAt": "2024-09-01T12:30:00Z",
        "score": 4,
        "totalQuestions": 5,
        "difficulty": "intro",
        "topicIds": ["topic-graphs"],
        "topicTitles": ["Graphs"],
    }
