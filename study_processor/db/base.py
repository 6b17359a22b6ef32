from study_processor.db.base_class import Base  # noqa: F401

# Import all the models here so that Base has them registered
# This file should NOT be imported by models.
from study_processor.models.job import Job  # noqa: F401
from study_processor.models.study_material import StudyMaterial  # noqa: F401
from study_processor.models.generated_content import GeneratedContent  # noqa: F401
