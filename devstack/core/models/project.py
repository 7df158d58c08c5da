"""
Project layout — the directory tree and database names of one project.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from devstack.core.models.settings import ProjectSettings


class ProjectLayout(BaseModel):
    """Where a scaffolded project lives and what it is wired to."""

    model_config = ConfigDict(frozen=True)

    name: str
    root: Path
    frontend: Path
    backend: Path
    python_env: Path
    gitignore: Path
    database: str
    role: str
    password: str

    @classmethod
    def plan(cls, name: str, projects_dir: Path, settings: ProjectSettings) -> ProjectLayout:
        root = projects_dir / name
        backend = root / "backend"
        return cls(
            name=name,
            root=root,
            frontend=root / "frontend",
            backend=backend,
            python_env=backend / f"conda_{name}",
            gitignore=root / ".gitignore",
            database=f"{settings.database_prefix}{name}",
            role=f"{settings.user_prefix}{name}",
            password=settings.password_default,
        )

    def ignore_patterns(self) -> list[str]:
        """Paths the project repository must not track."""
        return [
            "__pycache__/",
            "*.pyc",
            f"backend/conda_{self.name}/",
            "frontend/node_modules/",
        ]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "root": str(self.root),
            "frontend": str(self.frontend),
            "backend": str(self.backend),
            "python_env": str(self.python_env),
            "database": self.database,
            "role": self.role,
        }
