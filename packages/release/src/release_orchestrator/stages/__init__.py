from .assets import CELL_STAGES, PublishCellStages
from .crates import CratePublishStage
from .release import RELEASE_URL_ARTIFACT, CreateReleaseStage

__all__ = [
    "CELL_STAGES",
    "PublishCellStages",
    "CratePublishStage",
    "RELEASE_URL_ARTIFACT",
    "CreateReleaseStage",
]
