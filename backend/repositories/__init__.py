from .load_runs import LoadRunsRepository
from . import models

__all__ = ["LoadRunsRepository", "models"]
