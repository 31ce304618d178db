"""
Memory bank initializer.

Creates the directory tree and seeds the default documents on first start.
Existing files are never overwritten, so running it again is a no-op.
"""

from pathlib import Path
from typing import Dict, List

from .config import MEMORY_CATEGORIES, Config
from .mcp_logger import log_info

DEFAULT_DOCUMENTS: Dict[str, str] = {
    "core/project-brief.md": (
        "# Project Brief\n\n"
        "High-level overview of the project: core requirements and goals. "
        "Source of truth for the project's scope.\n"
    ),
    "core/productContext.md": (
        "# Product Context\n\n"
        "Why this project exists, the problems it solves, how it should work "
        "and its user experience goals.\n"
    ),
    "core/activeContext.md": (
        "# Active Context\n\n"
        "Current work focus, recent changes, next steps and active decisions.\n"
    ),
    "core/system-patterns.md": (
        "# System Patterns and Design Principles\n\n"
        "System architecture, key technical decisions, design patterns in use "
        "and component relationships.\n"
    ),
    "core/techContext.md": (
        "# Technical Context\n\n"
        "Technologies used, development setup, technical constraints and dependencies.\n"
    ),
    "dynamic/progress.md": (
        "# Progress Log\n\n"
        "What works, what's left to build, current status and known issues.\n"
    ),
    "dynamic/handover.md": (
        "# Handover Notes\n\n"
        "Key decisions and open threads to hand over to the next session.\n"
    ),
    "planning/project-plan.md": (
        "# Project Plan\n\n"
        "Objectives, timeline and key milestones.\n"
    ),
    "planning/roadmap.md": (
        "# Roadmap\n\n"
        "Future milestones and long-term vision.\n"
    ),
    "technical/error-log.md": (
        "# Error Log\n\n"
        "Errors encountered during development and their resolutions.\n"
    ),
    "technical/dependency-map.md": (
        "# Dependency Map\n\n"
        "Dependencies between files or components.\n"
    ),
    "technical/api-contracts.md": (
        "# API Contracts and Design Principles\n\n"
        "Core API contracts and design principles.\n"
    ),
}

EXTRA_DIRECTORIES = ("drafts", "auto_generated/docs", "auto_generated/summaries")


def initialize_memory_bank(config: Config) -> List[str]:
    """Ensure the memory tree exists. Returns the files created this run."""
    root = Path(config.memory.root_dir)
    archive = config.memory.archive.path

    for category in MEMORY_CATEGORIES:
        (root / category).mkdir(parents=True, exist_ok=True)
        (root / archive / category).mkdir(parents=True, exist_ok=True)
    for directory in EXTRA_DIRECTORIES:
        (root / directory).mkdir(parents=True, exist_ok=True)
    log_info(f"Memory bank directories ensured under {root}")

    created = []
    for relative, content in DEFAULT_DOCUMENTS.items():
        path = root / relative
        if path.exists():
            log_info(f"Memory file already exists: {path}. Skipping creation.")
            continue
        path.write_text(content, encoding="utf-8")
        created.append(str(path))
        log_info(f"Created initial memory file: {path}")

    log_info(f"Memory bank initialization complete ({len(created)} files created)")
    return created
