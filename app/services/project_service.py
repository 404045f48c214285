"""Project persistence."""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from app.models.project import Project

logger = logging.getLogger(__name__)


class ProjectService:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, project_id: str) -> Optional[Project]:
        with Session(self._engine) as session:
            return session.get(Project, project_id)

    def get_active(self, project_id: str) -> Optional[Project]:
        project = self.get(project_id)
        return project if project is not None and project.is_active else None

    def create(
        self,
        name: str,
        domain: Optional[str] = None,
        owner_id: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> Project:
        project = Project(name=name, domain=domain, owner_id=owner_id, settings=settings or {})
        with Session(self._engine) as session:
            session.add(project)
            session.commit()
            session.refresh(project)
        logger.info("project_created", extra={"project_id": project.id})
        return project
