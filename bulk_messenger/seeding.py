"""Load owners' gateway instances and message templates from a seed file.

Templates and instances are owned by the surrounding application; the seed
file lets an operator provision them for a standalone deployment.

Example seed file (YAML or JSON):

    instances:
      - owner_id: seller-1
        instance_name: loja-centro
        is_connected: true
    templates:
      - owner_id: seller-1
        name: IPTV vencido
        template_type: expired
        message: "Olá {nome}, seu plano {plano} venceu em {vencimento}."
"""

from pathlib import Path
from typing import List, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError

from bulk_messenger.config.exceptions import ConfigurationError
from bulk_messenger.config.loader import format_validation_errors
from bulk_messenger.domain.models import GatewayInstance, MessageTemplate
from bulk_messenger.logging import get_logger
from bulk_messenger.persistence.store import JobStore

logger = get_logger(__name__, component="seeding")


class SeedFile(BaseModel):
    instances: List[GatewayInstance] = Field(default_factory=list)
    templates: List[MessageTemplate] = Field(default_factory=list)


def load_seed_file(path: Path) -> SeedFile:
    """
    Parse and validate a seed file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read seed file: {e}",
            suggestions=[f"Ensure {path} exists and is readable"],
        )
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse seed file: {e}",
            suggestions=["Seed files may be YAML or JSON"],
        )

    try:
        return SeedFile.model_validate(data or {})
    except ValidationError as e:
        raise ConfigurationError(
            "Seed file validation failed",
            errors=format_validation_errors(e),
            suggestions=["template_type must be one of: expired, expiring_3days, billing"],
        )


def apply_seed(store: JobStore, seed: SeedFile) -> Tuple[int, int]:
    """
    Upsert every instance and template of the seed.

    Returns:
        Tuple of (instances saved, templates saved)
    """
    for instance in seed.instances:
        store.save_gateway_instance(instance)
    for template in seed.templates:
        store.save_template(template)

    logger.info(
        f"Seed applied: {len(seed.instances)} instance(s), {len(seed.templates)} template(s)",
        extra={
            "event": "seed.applied",
            "instance_count": len(seed.instances),
            "template_count": len(seed.templates),
        },
    )
    return len(seed.instances), len(seed.templates)
