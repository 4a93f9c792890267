"""FastAPI dependencies for claimflow."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, Path, status

from claimflow.config import Settings, get_settings
from claimflow.pipeline.ingest import IngestionOrchestrator
from claimflow.preferences import MappingPreferenceStore, create_preference_store
from claimflow.utils.storage import UploadStorage


def get_storage(settings: Annotated[Settings, Depends(get_settings)]) -> UploadStorage:
    """Get storage instance."""
    return UploadStorage(settings.uploads_path)


def get_orchestrator(
    storage: Annotated[UploadStorage, Depends(get_storage)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> IngestionOrchestrator:
    return IngestionOrchestrator(storage, settings)


@lru_cache
def get_preference_store() -> MappingPreferenceStore:
    """Get the process-wide preference store."""
    return create_preference_store(get_settings())


def validate_upload_exists(
    file_id: Annotated[str, Path(description="Upload ID")],
    storage: Annotated[UploadStorage, Depends(get_storage)],
) -> str:
    """Validate that an upload exists, return file_id if valid."""
    if not storage.upload_exists(file_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Upload {file_id} not found",
        )
    return file_id


# Type aliases for dependency injection
StorageDep = Annotated[UploadStorage, Depends(get_storage)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
OrchestratorDep = Annotated[IngestionOrchestrator, Depends(get_orchestrator)]
PreferencesDep = Annotated[MappingPreferenceStore, Depends(get_preference_store)]
FileIdDep = Annotated[str, Depends(validate_upload_exists)]
