"""Typed application config backed by a JSON file."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from errors import ConfigError
from models import KeyEdge, SampleFormat

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "murmur" / "config.json"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "murmur"
DEFAULT_KEYS: tuple[str, ...] = ("ControlLeft", "Space")


# ----------------------------------------------------------------------
# Activation modes
# ----------------------------------------------------------------------


def _check_keys(keys: tuple[str, ...]) -> None:
    if not keys or not all(isinstance(k, str) and k for k in keys):
        raise ConfigError("activation.keys must be a non-empty list of key names")


@dataclass(frozen=True)
class PushToTalk:
    keys: tuple[str, ...] = DEFAULT_KEYS

    def __post_init__(self) -> None:
        _check_keys(self.keys)


@dataclass(frozen=True)
class Toggle:
    keys: tuple[str, ...] = DEFAULT_KEYS
    edge: KeyEdge = KeyEdge.DOWN

    def __post_init__(self) -> None:
        _check_keys(self.keys)


@dataclass(frozen=True)
class ToggleVad:
    keys: tuple[str, ...] = DEFAULT_KEYS
    threshold: float = 0.5
    speech_duration: float = 1.0
    silence_duration: float = 2.0
    pre_buffer_duration: float = 1.0
    continuous: bool = False

    def __post_init__(self) -> None:
        _check_keys(self.keys)
        if not 0.0 <= self.threshold <= 1.0:
            raise ConfigError(f"threshold must be within [0, 1], got {self.threshold}")
        for name in ("speech_duration", "silence_duration", "pre_buffer_duration"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")


ActivationConfig = Union[PushToTalk, Toggle, ToggleVad]

TRIGGER_TYPES = {
    "push_to_talk": PushToTalk,
    "toggle": Toggle,
    "toggle_vad": ToggleVad,
}


# ----------------------------------------------------------------------
# Prompt modes
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class NoPrompt:
    pass


@dataclass(frozen=True)
class VocabularyPrompt:
    vocabulary: tuple[str, ...] = ()


@dataclass(frozen=True)
class RawPrompt:
    prompt: str = ""


PromptConfig = Union[NoPrompt, VocabularyPrompt, RawPrompt]


# ----------------------------------------------------------------------
# Sections
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class AudioConfig:
    channels: int = 1
    sample_rate: int = 16000
    sample_format: SampleFormat = SampleFormat.F32
    device: Optional[str] = None
    queue_size: int = 64

    def __post_init__(self) -> None:
        if self.channels < 1:
            raise ConfigError("audio.channels must be at least 1")
        if not 1000 <= self.sample_rate <= 384000:
            raise ConfigError(f"audio.sample_rate out of range: {self.sample_rate}")


@dataclass(frozen=True)
class ModelConfig:
    repo: str = "Systran/faster-whisper-base.en"
    filename: str = "model.bin"
    prompt: PromptConfig = NoPrompt()
    replacements: tuple[tuple[str, str], ...] = ()
    device: str = "auto"
    compute_type: str = "int8"
    language: Optional[str] = None
    min_duration: float = 0.3


@dataclass(frozen=True)
class PathConfig:
    cache_dir: Path = DEFAULT_CACHE_DIR


@dataclass(frozen=True)
class ActivationSettings:
    trigger: ActivationConfig = PushToTalk()
    autosend: bool = False
    notify: bool = True

    @property
    def keys(self) -> tuple[str, ...]:
        return self.trigger.keys


@dataclass(frozen=True)
class AppConfig:
    audio: AudioConfig = field(default_factory=AudioConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    paths: PathConfig = field(default_factory=PathConfig)
    activation: ActivationSettings = field(default_factory=ActivationSettings)


# ----------------------------------------------------------------------
# dict <-> config
# ----------------------------------------------------------------------


def _section(data: dict, name: str, allowed: set[str]) -> dict:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{name}] must be an object")
    unknown = set(value) - allowed
    if unknown:
        raise ConfigError(f"unknown option(s) in [{name}]: {', '.join(sorted(unknown))}")
    return value


def _parse_prompt(value: Any) -> PromptConfig:
    if value is None:
        return NoPrompt()
    if not isinstance(value, dict) or "type" not in value:
        raise ConfigError("model.prompt must be an object with a 'type'")
    kind = value["type"]
    if kind == "none":
        return NoPrompt()
    if kind == "vocabulary":
        words = value.get("vocabulary", [])
        if not isinstance(words, list):
            raise ConfigError("model.prompt.vocabulary must be a list")
        return VocabularyPrompt(vocabulary=tuple(str(w) for w in words))
    if kind == "raw":
        return RawPrompt(prompt=str(value.get("prompt", "")))
    raise ConfigError(f"unknown prompt type: {kind!r}")


def _dump_prompt(prompt: PromptConfig) -> dict:
    if isinstance(prompt, VocabularyPrompt):
        return {"type": "vocabulary", "vocabulary": list(prompt.vocabulary)}
    if isinstance(prompt, RawPrompt):
        return {"type": "raw", "prompt": prompt.prompt}
    if isinstance(prompt, NoPrompt):
        return {"type": "none"}
    raise TypeError(f"unsupported prompt config: {prompt!r}")


def _parse_trigger(value: Any, keys: tuple[str, ...]) -> ActivationConfig:
    if not isinstance(value, dict) or "type" not in value:
        raise ConfigError("activation.trigger must be an object with a 'type'")
    options = dict(value)
    kind = options.pop("type")
    cls = TRIGGER_TYPES.get(kind)
    if cls is None:
        raise ConfigError(f"unknown trigger type: {kind!r}")
    try:
        if cls is Toggle and "edge" in options:
            options["edge"] = KeyEdge(options["edge"])
        if cls is ToggleVad:
            for name in ("threshold", "speech_duration", "silence_duration", "pre_buffer_duration"):
                if name in options:
                    options[name] = float(options[name])
        return cls(keys=keys, **options)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid {kind} trigger options: {exc}") from exc


def _dump_trigger(trigger: ActivationConfig) -> dict:
    if isinstance(trigger, ToggleVad):
        return {
            "type": "toggle_vad",
            "threshold": trigger.threshold,
            "speech_duration": trigger.speech_duration,
            "silence_duration": trigger.silence_duration,
            "pre_buffer_duration": trigger.pre_buffer_duration,
            "continuous": trigger.continuous,
        }
    if isinstance(trigger, Toggle):
        return {"type": "toggle", "edge": trigger.edge.value}
    if isinstance(trigger, PushToTalk):
        return {"type": "push_to_talk"}
    raise TypeError(f"unsupported trigger config: {trigger!r}")


def config_from_dict(data: dict) -> AppConfig:
    """Build an AppConfig from parsed JSON, filling in defaults."""
    if not isinstance(data, dict):
        raise ConfigError("config root must be an object")
    unknown = set(data) - {"audio", "model", "paths", "activation"}
    if unknown:
        raise ConfigError(f"unknown section(s): {', '.join(sorted(unknown))}")

    defaults = AppConfig()
    audio = _section(data, "audio", {"channels", "sample_rate", "sample_format", "device", "queue_size"})
    model = _section(
        data,
        "model",
        {"repo", "filename", "prompt", "replacements", "device", "compute_type", "language", "min_duration"},
    )
    paths = _section(data, "paths", {"cache_dir"})
    activation = _section(data, "activation", {"trigger", "keys", "autosend", "notify"})

    try:
        audio_cfg = AudioConfig(
            channels=int(audio.get("channels", defaults.audio.channels)),
            sample_rate=int(audio.get("sample_rate", defaults.audio.sample_rate)),
            sample_format=SampleFormat(audio.get("sample_format", defaults.audio.sample_format.value)),
            device=audio.get("device"),
            queue_size=int(audio.get("queue_size", defaults.audio.queue_size)),
        )

        replacements = model.get("replacements", {})
        if not isinstance(replacements, dict):
            raise ConfigError("model.replacements must be an object")
        model_cfg = ModelConfig(
            repo=str(model.get("repo", defaults.model.repo)),
            filename=str(model.get("filename", defaults.model.filename)),
            prompt=_parse_prompt(model.get("prompt")),
            replacements=tuple((str(k), str(v)) for k, v in replacements.items()),
            device=str(model.get("device", defaults.model.device)),
            compute_type=str(model.get("compute_type", defaults.model.compute_type)),
            language=model.get("language"),
            min_duration=float(model.get("min_duration", defaults.model.min_duration)),
        )

        cache_dir = paths.get("cache_dir")
        paths_cfg = PathConfig(
            cache_dir=Path(cache_dir).expanduser() if cache_dir else defaults.paths.cache_dir
        )

        keys = activation.get("keys", list(DEFAULT_KEYS))
        if not isinstance(keys, list):
            raise ConfigError("activation.keys must be a list")
        trigger = _parse_trigger(activation.get("trigger", {"type": "push_to_talk"}), tuple(keys))
        activation_cfg = ActivationSettings(
            trigger=trigger,
            autosend=bool(activation.get("autosend", defaults.activation.autosend)),
            notify=bool(activation.get("notify", defaults.activation.notify)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(str(exc)) from exc

    return AppConfig(audio=audio_cfg, model=model_cfg, paths=paths_cfg, activation=activation_cfg)


def config_to_dict(config: AppConfig) -> dict:
    return {
        "audio": {
            "channels": config.audio.channels,
            "sample_rate": config.audio.sample_rate,
            "sample_format": config.audio.sample_format.value,
            "device": config.audio.device,
            "queue_size": config.audio.queue_size,
        },
        "model": {
            "repo": config.model.repo,
            "filename": config.model.filename,
            "prompt": _dump_prompt(config.model.prompt),
            "replacements": dict(config.model.replacements),
            "device": config.model.device,
            "compute_type": config.model.compute_type,
            "language": config.model.language,
            "min_duration": config.model.min_duration,
        },
        "paths": {"cache_dir": str(config.paths.cache_dir)},
        "activation": {
            "trigger": _dump_trigger(config.activation.trigger),
            "keys": list(config.activation.keys),
            "autosend": config.activation.autosend,
            "notify": config.activation.notify,
        },
    }


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_CONFIG_PATH
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppConfig:
        """Read the config, writing the defaults on first run."""
        if not self._path.exists():
            config = AppConfig()
            self.save(config)
            logger.info("Wrote default config to %s", self._path)
            return config
        return config_from_dict(self._read_all())

    def save(self, config: AppConfig) -> None:
        self._write_all(config_to_dict(config))

    def _read_all(self) -> dict:
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable config %s: %s", self._path, exc)
            return {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
