# estimator/project_service.py

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from estimator.blob_store import BlobStore
from estimator.config import DEFAULT_TEAM_VELOCITY
from estimator.exceptions import NotFoundError, StorageError, ValidationError
from estimator.main_agent import analyze_project, generate_module_tree
from estimator.project_store import ProjectStore
from estimator.tools.estimation_scale import Scale, detect_scale, get_scale
from estimator.tools.file_parsers import extract_text_from_documents, guess_mime_type, is_allowed_file
from estimator.tools.markdown_export import convert_modules_to_markdown
from estimator.tools.rollup_calculator import rollup_modules
from estimator.tools.scenario_adjuster import validate_scenario, validate_team_velocity
from estimator.tools.timeline_estimator import estimate_timeline

logger = logging.getLogger(__name__)


class ProjectService:
    """
    Project operations on behalf of a signed-in user.

    Every method takes the caller's `user_id`; a project owned by someone
    else is reported as missing (NotFoundError), never as forbidden.
    """

    def __init__(
        self,
        store: ProjectStore,
        blobs: BlobStore,
        default_scale: str = "tshirt",
        default_team_velocity: float = DEFAULT_TEAM_VELOCITY,
        genai_api_key: Optional[str] = None,
        genai_model: Optional[str] = None,
    ):
        self.store = store
        self.blobs = blobs
        self.default_scale = get_scale(default_scale)
        self.default_team_velocity = default_team_velocity
        # None falls back to the environment inside main_agent
        self.genai_api_key = genai_api_key
        self.genai_model = genai_model

    # ----------------------------------------------------------------
    # Helpers
    # ----------------------------------------------------------------

    def _owned_project(self, user_id: str, project_id: str) -> Dict[str, Any]:
        project = self.store.get_project(project_id)
        if project is None or project.get("user_id") != user_id:
            raise NotFoundError("Project not found", details={"project_id": project_id})
        return project

    def _project_version(self, project_id: str, version_id: str) -> Dict[str, Any]:
        version = self.store.get_version(version_id)
        if version is None or version.get("project_id") != project_id:
            raise NotFoundError("Version not found", details={"version_id": version_id})
        return version

    def _select_version(self, project: Dict[str, Any], version_id: Optional[str]) -> Dict[str, Any]:
        """Explicit version, else the active one, else the newest."""
        if version_id:
            return self._project_version(project["id"], version_id)

        active_id = project.get("active_version_id")
        if active_id:
            version = self.store.get_version(active_id)
            if version is not None:
                return version
            logger.warning("Active version %s of project %s is missing", active_id, project["id"])

        version = self.store.latest_version(project["id"])
        if version is None:
            raise NotFoundError(
                "No modules found for this project. Generate modules first.",
                details={"project_id": project["id"]},
            )
        return version

    def _scale_for(self, version: Dict[str, Any]) -> Scale:
        if version.get("scale"):
            return get_scale(version["scale"])
        return detect_scale(version.get("modules_data"), self.default_scale)

    def _documents_text(self, project_id: str) -> str:
        documents = []
        for record in self.store.list_files(project_id):
            try:
                data = self.blobs.read(record["file_path"])
            except StorageError as e:
                logger.warning("Skipping unreadable file %s: %s", record["original_name"], e)
                continue
            documents.append((record["original_name"], data, record.get("mime_type")))
        return extract_text_from_documents(documents, self.genai_api_key, self.genai_model)

    def _require_documents(self, project_id: str, purpose: str) -> None:
        if not self.store.list_files(project_id):
            raise ValidationError(f"No files uploaded for {purpose}")

    # ----------------------------------------------------------------
    # Projects
    # ----------------------------------------------------------------

    def create_project(self, user_id: str, name: str, description: str = "") -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Project name is required")
        project = self.store.create_project(user_id, name, (description or "").strip())
        logger.info("Created project %s for user %s", project["id"], user_id)
        return project

    def list_projects(self, user_id: str) -> List[Dict[str, Any]]:
        projects = self.store.list_projects(user_id)
        for project in projects:
            project["file_count"] = len(self.store.list_files(project["id"]))
            project["version_count"] = len(self.store.list_versions(project["id"]))
        return projects

    def get_project_detail(self, user_id: str, project_id: str) -> Dict[str, Any]:
        project = self._owned_project(user_id, project_id)
        active_id = project.get("active_version_id")
        return {
            "project": project,
            "files": self.store.list_files(project_id),
            "analysis": self.store.get_analysis(project_id),
            "active_version": self.store.get_version(active_id) if active_id else None,
            "version_count": len(self.store.list_versions(project_id)),
        }

    def update_project(
        self,
        user_id: str,
        project_id: str,
        name: str,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._owned_project(user_id, project_id)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Project name is required")
        changes: Dict[str, Any] = {"name": name}
        if description is not None:
            changes["description"] = description.strip()
        return self.store.update_project(project_id, **changes)

    # ----------------------------------------------------------------
    # Documents
    # ----------------------------------------------------------------

    def upload_document(
        self,
        user_id: str,
        project_id: str,
        filename: str,
        data: bytes,
        mime_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._owned_project(user_id, project_id)
        if not data:
            raise ValidationError("No file provided")
        if not is_allowed_file(filename, mime_type):
            raise ValidationError(
                f"File type not allowed: {filename}",
                details={"mime_type": mime_type},
            )

        result = self.blobs.upload(filename, data)
        record = self.store.add_file(
            project_id,
            filename=result.pathname,
            original_name=filename,
            file_size=result.size,
            mime_type=guess_mime_type(filename, mime_type),
            file_path=result.url,
        )
        logger.info("Uploaded %s (%d bytes) to project %s", filename, result.size, project_id)
        return record

    def list_documents(self, user_id: str, project_id: str) -> List[Dict[str, Any]]:
        self._owned_project(user_id, project_id)
        return self.store.list_files(project_id)

    def delete_document(self, user_id: str, project_id: str, file_id: str) -> None:
        self._owned_project(user_id, project_id)
        record = self.store.get_file(file_id)
        if record is None or record.get("project_id") != project_id:
            raise NotFoundError("File not found", details={"file_id": file_id})

        self.blobs.delete(record["file_path"])
        self.store.delete_file(file_id)

    # ----------------------------------------------------------------
    # Analysis and generation
    # ----------------------------------------------------------------

    def run_analysis(self, user_id: str, project_id: str) -> Dict[str, Any]:
        project = self._owned_project(user_id, project_id)
        self._require_documents(project_id, "analysis")

        analysis = analyze_project(
            project["name"],
            project.get("description") or "",
            self._documents_text(project_id),
            api_key=self.genai_api_key,
            model=self.genai_model,
        )
        saved = self.store.save_analysis(project_id, analysis)
        self.store.update_project(project_id, status="analyzed")
        return saved

    def generate_modules(
        self,
        user_id: str,
        project_id: str,
        scale: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Generate a module tree and store it as a new, active version."""
        project = self._owned_project(user_id, project_id)
        self._require_documents(project_id, "module generation")
        chosen = get_scale(scale) if scale else self.default_scale

        tree = generate_module_tree(
            project["name"],
            project.get("description") or "",
            self._documents_text(project_id),
            chosen,
            api_key=self.genai_api_key,
            model=self.genai_model,
        )
        version = self.store.create_version(
            project_id, tree, name="Generated Modules", scale=chosen.name
        )
        self.store.set_active_version(project_id, version["id"])
        self.store.update_project(project_id, status="modules_generated")
        return version

    # ----------------------------------------------------------------
    # Versions
    # ----------------------------------------------------------------

    def create_version(
        self,
        user_id: str,
        project_id: str,
        modules_data: Any,
        name: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._owned_project(user_id, project_id)
        if not isinstance(modules_data, dict) or not isinstance(modules_data.get("modules"), list):
            raise ValidationError("modules_data must be an object with a 'modules' list")

        scale = detect_scale(modules_data, self.default_scale)
        version = self.store.create_version(project_id, modules_data, name=name, scale=scale.name)
        self.store.set_active_version(project_id, version["id"])
        return version

    def list_versions(self, user_id: str, project_id: str) -> Dict[str, Any]:
        project = self._owned_project(user_id, project_id)
        return {
            "versions": self.store.list_versions(project_id),
            "active_version_id": project.get("active_version_id"),
        }

    def activate_version(self, user_id: str, project_id: str, version_id: str) -> Dict[str, Any]:
        self._owned_project(user_id, project_id)
        version = self._project_version(project_id, version_id)
        self.store.set_active_version(project_id, version_id)
        logger.info("Project %s now uses version %s (v%d)", project_id, version_id, version["version"])
        return version

    # ----------------------------------------------------------------
    # Estimation
    # ----------------------------------------------------------------

    def preview_estimation(
        self,
        user_id: str,
        project_id: str,
        scenario: Any = "realistic",
        team_velocity: Any = None,
        version_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Roll up a version under `scenario` without writing anything.

        Returns the annotated copy of the tree alongside the estimation and a
        three-scenario timeline for comparison charts.
        """
        scenario = validate_scenario(scenario)
        velocity = validate_team_velocity(team_velocity, self.default_team_velocity)
        project = self._owned_project(user_id, project_id)
        version = self._select_version(project, version_id)
        scale = self._scale_for(version)

        annotated, estimation = rollup_modules(
            version.get("modules_data"),
            scenario=scenario,
            scale=scale,
            team_velocity=velocity,
        )
        return {
            "version_id": version["id"],
            "version": version["version"],
            "modules_data": annotated,
            "estimation": estimation,
            "timeline": estimate_timeline(version.get("modules_data"), scale, velocity),
        }

    def apply_estimation(
        self,
        user_id: str,
        project_id: str,
        scenario: Any = "realistic",
        team_velocity: Any = None,
        version_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Save the rollup as a new version named "<Scenario> Estimation" and
        make it active. The source version is left as it was.
        """
        scenario = validate_scenario(scenario)
        velocity = validate_team_velocity(team_velocity, self.default_team_velocity)
        project = self._owned_project(user_id, project_id)
        source = self._select_version(project, version_id)
        scale = self._scale_for(source)

        annotated, estimation = rollup_modules(
            source.get("modules_data"),
            scenario=scenario,
            scale=scale,
            team_velocity=velocity,
        )
        totals = estimation["totals"]

        version = self.store.create_version(
            project_id,
            annotated,
            name=f"{scenario.capitalize()} Estimation",
            base_estimation_hours=totals["original_hours"],
            adjusted_estimation_hours=totals["adjusted_hours"],
            optimistic_level=scenario,
            team_velocity=velocity,
            total_estimated_sprints=totals["estimated_sprints"],
            scale=scale.name,
            source_version_id=source["id"],
        )
        self.store.set_active_version(project_id, version["id"])
        logger.info(
            "Applied %s estimation to project %s: %.1fh -> %.1fh",
            scenario, project_id, totals["original_hours"], totals["adjusted_hours"],
        )
        return {"version": version, "estimation": estimation}

    # ----------------------------------------------------------------
    # Export
    # ----------------------------------------------------------------

    def export_markdown(
        self,
        user_id: str,
        project_id: str,
        version_id: Optional[str] = None,
    ) -> str:
        project = self._owned_project(user_id, project_id)
        version = self._select_version(project, version_id)
        return convert_modules_to_markdown(
            version.get("modules_data") or {},
            project_name=project["name"],
            scale=self._scale_for(version),
        )
