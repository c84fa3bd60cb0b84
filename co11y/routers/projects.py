"""API router for project detail."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from co11y.discovery import find_project
from co11y.models import ProjectDetailResponse
from co11y.routers.api import projects_dir_for
from co11y.services.aggregator import build_project

projects_router = APIRouter(prefix="/api/projects", tags=["projects"])


@projects_router.get("/{project_id}", response_model=ProjectDetailResponse, response_model_exclude_none=True)
def get_project(request: Request, project_id: str):
    """Get one project (by encoded directory name) with all of its sessions."""
    project = find_project(projects_dir_for(request), project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return ProjectDetailResponse(project=build_project(project))
