"""Project creation and lookup."""
from fastapi import APIRouter, Depends

from app.core.errors import OrtraceError
from app.core.readiness import get_services
from app.models.schemas import ProjectCreateRequest, ProjectResponse
from app.services.container import AppServices

router = APIRouter()


@router.post("", response_model=ProjectResponse, status_code=201)
def create_project(body: ProjectCreateRequest, services: AppServices = Depends(get_services)):
    project = services.projects.create(name=body.name, domain=body.domain, settings=body.settings)
    return ProjectResponse.model_validate(project)


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(project_id: str, services: AppServices = Depends(get_services)):
    project = services.projects.get(project_id)
    if project is None:
        raise OrtraceError("ORT-API-004", detail=f"project {project_id} not found")
    return ProjectResponse.model_validate(project)
