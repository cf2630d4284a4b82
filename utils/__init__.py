# StudyMap utilities
from .file_storage import (
    CourseStore,
    collect_topic_ids,
    generate_resource_id,
    read_json_file,
    write_json_file,
    utc_now_iso
)

from .model_config import (
    ModelConfig,
    Operation,
    OPERATION_CONFIGS,
    DEFAULT_MODEL
)

__all__ = [
    'CourseStore',
    'collect_topic_ids',
    'generate_resource_id',
    'read_json_file',
    'write_json_file',
    'utc_now_iso',
    'ModelConfig',
    'Operation',
    'OPERATION_CONFIGS',
    'DEFAULT_MODEL'
]
