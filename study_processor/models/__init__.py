from study_processor.models.job import Job
from study_processor.models.study_material import StudyMaterial
from study_processor.models.generated_content import GeneratedContent

__all__ = ["Job", "StudyMaterial", "GeneratedContent"]
