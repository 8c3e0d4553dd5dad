"""
Built-in rule templates: PDF workflow, downloads organizer and screenshot organizer
"""
import logging
from importlib import resources
from string import Template
from typing import Dict, List

import yaml

from filewarden.schemas.rules import Rule
from filewarden.services.config_service import AgentConfig

logger = logging.getLogger(__name__)

DEFAULTS_FILE = "defaults.yaml"
ORGANIZER_PRIORITY = 50
SCREENSHOT_PRIORITY = 450
SCREENSHOT_EXTENSIONS = ["png", "jpg", "jpeg", "gif", "webp"]


def mode_destinations(config: AgentConfig) -> Dict[str, str]:
    """Destination roots for the configured downloads mode"""
    if config.settings.downloads_mode == "nested":
        return {
            "pdf_root": "{downloads}",
            "images": "{downloads}/Images",
            "videos": "{downloads}/Videos",
            "music": "{downloads}/Music",
            "archives": "{downloads}/Archives",
            "documents": "{downloads}/Documents",
            "installers": "{downloads}/Installers",
            "code": "{downloads}/Code",
            "shots_root": "{screenshots}",
        }
    return {
        "pdf_root": "{documents}",
        "images": "{pictures}/Downloads",
        "videos": "{videos}",
        "music": "{music}",
        "archives": "{documents}/Archives",
        "documents": "{documents}/Documents",
        "installers": "{documents}/Installers",
        "code": "{documents}/Code",
        "shots_root": "{pictures}/Screenshots",
    }


def load_templates(config: AgentConfig) -> dict:
    text = resources.files(__package__).joinpath(DEFAULTS_FILE).read_text(encoding="utf-8")
    return yaml.safe_load(Template(text).substitute(mode_destinations(config)))


def organizer_rule(entry: dict) -> Rule:
    kind = entry["kind"]
    tag = entry.get("tag", kind.lower())
    return Rule(
        name=f"Downloads - {kind} Organizer",
        priority=ORGANIZER_PRIORITY,
        tags=["downloads", tag, "organizer"],
        trigger={"type": "file_created", "config": {"folder": "{downloads}"}},
        conditions=[{"type": "extension", "operator": "in", "value": entry["extensions"]}],
        actions=[{"type": "move", "config": {"destination": entry["destination"], "createDirs": True}}],
    )


def screenshot_rule(entry: dict) -> Rule:
    action_config = {"destination": entry["destination"], "createDirs": True}
    if entry.get("pattern"):
        action_config["pattern"] = entry["pattern"]
    return Rule(
        name=entry["name"],
        priority=SCREENSHOT_PRIORITY,
        tags=entry["tags"],
        trigger={"type": "file_created", "config": {"folder": "{screenshots}"}},
        conditions=[{"type": "extension", "operator": "in", "value": SCREENSHOT_EXTENSIONS}],
        actions=[{"type": "move", "config": action_config}],
    )


def build_default_rules(config: AgentConfig) -> List[Rule]:
    """All built-in rules for the configured downloads and screenshot modes"""
    templates = load_templates(config)

    rules = [Rule.model_validate(doc) for doc in templates["pdf_rules"]]
    rules.extend(organizer_rule(entry) for entry in templates["organizer_rules"])
    rules.append(screenshot_rule(templates["screenshot_rules"][config.settings.screenshot_mode]))
    return rules


async def install_default_rules(store, config: AgentConfig) -> List[Rule]:
    """Save the built-in rules into an empty store; returns what was installed"""
    if await store.get_rules():
        return []

    rules = build_default_rules(config)
    for rule in rules:
        await store.save_rule(rule)
    logger.info(f"Installed {len(rules)} default rules "
                f"(downloads: {config.settings.downloads_mode}, "
                f"screenshots: {config.settings.screenshot_mode})")
    return rules
