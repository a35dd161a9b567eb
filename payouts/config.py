import json
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from payouts.errors import BadConfigException
from payouts.models import Config


def load_conf(config_path: str) -> Config:
    """Loads the energy field -> token -> claim tree from a json file"""
    path = Path(config_path)
    if not path.exists():
        raise BadConfigException(f"No config file at {config_path}")
    try:
        return TypeAdapter(Config).validate_json(path.read_bytes())
    except ValidationError as e:
        raise BadConfigException(f"Invalid config at {config_path}: {e}") from e


def write_conf(conf: Config, config_path: str) -> None:
    Path(config_path).parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w+") as j:
        j.write(json.dumps(conf.model_dump(), indent=4))
