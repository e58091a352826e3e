from __future__ import annotations

import logging
from dataclasses import dataclass, field

from engine.hook_loader import HotModuleLoader
from engine.shell_evaluator import BootContext
from middleware.observability import project_logger
from schemas.project_config import ProjectConfig


@dataclass
class ProjectContext:
    """Everything a message call needs to know about its project.

    Built once per configured project at start-up and shared by every
    message; ``boot_context`` holds the ``#{...}`` results for the lifetime
    of the process.
    """

    config: ProjectConfig
    logger: logging.Logger
    boot_context: BootContext = field(default_factory=BootContext)
    loader: HotModuleLoader = field(default_factory=HotModuleLoader)

    @classmethod
    def create(cls, config: ProjectConfig) -> "ProjectContext":
        log = project_logger(config.slug, config.log_level)
        boot_context = BootContext.evaluate(config.declared_context(), log)
        if boot_context.shell_cache:
            log.info(f"Evaluated {len(boot_context.shell_cache)} boot-time context command(s)")
        return cls(config=config, logger=log, boot_context=boot_context)
