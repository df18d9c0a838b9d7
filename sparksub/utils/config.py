"""
Configuration management for sparksub.

This module provides a hierarchical configuration system with support for
YAML files, environment variable overrides, and programmatic access. The
configuration covers logging, cluster access, spark-submit parameters, the
scheduler gate and the planner.

Configuration sources (in order of precedence):
1. Command line flags (applied by the CLI)
2. Environment variables (SPARKSUB_* prefix)
3. YAML configuration file (~/.sparksub/config.yaml)
4. Default values defined in dataclasses

Configuration sections:
- logging: Log level, file output, verbosity
- cluster: Target namespace and kubeconfig selection
- submit: spark-submit binary and pass-through cluster parameters
- gate: Minimum submission gap, pod deletion wait and cleanup retry policy
- planner: Default strategy and per-tag weights
"""

import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, field, asdict

from sparksub.utils.logging import get_logger

log = get_logger("config")

CONFIG_DIR = Path.home() / ".sparksub"
CONFIG_FILE = CONFIG_DIR / "config.yaml"

@dataclass
class LoggingConfig:
    """
    Logging configuration section.
    """
    # Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL
    level: str = "INFO"
    # Optional path to log file (None = stdout only)
    file: Optional[str] = None
    # Include logger name and line number in messages
    verbose: bool = False
    # Let the kubernetes client log every REST call
    kube_debug: bool = False

@dataclass
class ClusterConfig:
    """
    Kubernetes access configuration section.
    """
    # Namespace the Spark pods run in; the gate empties it before each submission
    namespace: str = "spark"
    # Optional kubeconfig path (None = in-cluster config, then ~/.kube/config)
    kubeconfig: Optional[str] = None
    # Optional kubeconfig context name
    context: Optional[str] = None

@dataclass
class SubmitConfig:
    """
    spark-submit configuration section.

    Everything here is passed through to spark-submit unchanged.
    """
    # Path to the spark-submit executable
    spark_submit_path: str = "spark-submit"
    # Spark master URL (e.g. k8s://https://10.0.0.1:6443)
    master: Optional[str] = None
    deploy_mode: str = "cluster"
    service_account: str = "spark"
    # Container image for driver and executors
    image: Optional[str] = None
    # Custom kube scheduler for the Spark pods ("" = cluster default)
    scheduler_name: str = ""
    # Volume name of the pre-created PVC inside the pod spec
    pvc_name: str = "spark-local-dir-1"
    # Name of the pre-created PersistentVolumeClaim
    pvc_claim_name: Optional[str] = None
    pvc_mount_path: str = "/mnt"
    # Forward spark-submit stdout/stderr instead of discarding it
    show_log: bool = False

@dataclass
class GateConfig:
    """
    Scheduler gate configuration section.
    """
    # Minimum seconds between two consecutive submissions
    min_gap: float = 1.0
    # Admission attempts when namespace cleanup fails
    cleanup_attempts: int = 3
    cleanup_delay: float = 1.0
    cleanup_backoff: float = 2.0
    # Seconds to wait for deleted pods to disappear from the namespace
    deletion_timeout: float = 60.0
    # Seconds between two pod listings while waiting
    poll_interval: float = 0.5
    # Stop the batch when an admission cannot be obtained
    abort_on_cleanup_failure: bool = True
    # Empty the namespace once more after all jobs finished
    final_cleanup: bool = True

@dataclass
class PlannerConfig:
    """
    Planner configuration section.
    """
    # Default planning strategy: fair or workload
    strategy: str = "fair"
    # Per-tag weights for the workload strategy (e.g. {"storage": 2.0})
    tag_weights: Dict[str, float] = field(default_factory=dict)


@dataclass
class Config:
    """
    Root configuration container for sparksub.
    """

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    submit: SubmitConfig = field(default_factory=SubmitConfig)
    gate: GateConfig = field(default_factory=GateConfig)
    planner: PlannerConfig = field(default_factory=PlannerConfig)

    def to_dict(self) -> dict:
        """
        Convert configuration to dictionary.

        :return: Nested dictionary representation of all sections.
        """
        return asdict(self)

    def save(self, path: Path = None) -> None:
        """
        Save configuration to YAML file.

        Creates parent directories if they don't exist.

        :param path: Path to save config file (default: ~/.sparksub/config.yaml).
        """
        path = path or CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(
                self.to_dict(),
                f,
                default_flow_style=False,
                sort_keys=False  # Keep dataclass field order
            )

        log.info(f"Config saved to {path}")

# Global configuration instance
config = Config()

_SECTIONS = ("logging", "cluster", "submit", "gate", "planner")


def _apply_env_vars(cfg: Config) -> None:
    """
    Apply environment variable overrides to configuration.

    Checks for SPARKSUB_* environment variables and applies them on top of
    the file configuration. The target field's current type decides the
    conversion.

    :param cfg: Configuration instance to update.
    """
    env_mappings = {
        "SPARKSUB_LOG_LEVEL": ("logging", "level"),
        "SPARKSUB_LOG_FILE": ("logging", "file"),
        "SPARKSUB_KUBE_DEBUG": ("logging", "kube_debug"),
        "SPARKSUB_NAMESPACE": ("cluster", "namespace"),
        "SPARKSUB_KUBECONFIG": ("cluster", "kubeconfig"),
        "SPARKSUB_KUBE_CONTEXT": ("cluster", "context"),
        "SPARKSUB_SPARK_SUBMIT": ("submit", "spark_submit_path"),
        "SPARKSUB_MASTER": ("submit", "master"),
        "SPARKSUB_IMAGE": ("submit", "image"),
        "SPARKSUB_SCHEDULER_NAME": ("submit", "scheduler_name"),
        "SPARKSUB_PVC_CLAIM_NAME": ("submit", "pvc_claim_name"),
        "SPARKSUB_MIN_GAP": ("gate", "min_gap"),
        "SPARKSUB_CLEANUP_ATTEMPTS": ("gate", "cleanup_attempts"),
        "SPARKSUB_DELETION_TIMEOUT": ("gate", "deletion_timeout"),
        "SPARKSUB_PLANNER": ("planner", "strategy"),
    }

    for env_var, (section, key) in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            section_obj = getattr(cfg, section)
            current = getattr(section_obj, key)

            # bool must be checked before int
            if isinstance(current, bool):
                value = value.lower() in ("true", "1", "yes")
            elif isinstance(current, int):
                value = int(value)
            elif isinstance(current, float):
                value = float(value)

            setattr(section_obj, key, value)
            log.debug(f"Config override from {env_var}: {section}.{key} = {value}")


def _load_from_dict(cfg: Config, data: Dict[str, Any]) -> None:
    """
    Load configuration values from a dictionary.

    Only fields that exist in the configuration dataclasses are updated;
    unknown sections and keys are ignored.

    :param cfg: Configuration instance to update.
    :param data: Nested dictionary with configuration values.
    """
    for section in _SECTIONS:
        values = data.get(section)
        if not isinstance(values, dict):
            continue
        section_obj = getattr(cfg, section)
        for k, v in values.items():
            if hasattr(section_obj, k):
                setattr(section_obj, k, v)

def load_config(config_path: Path = None) -> Config:
    """
    Load configuration from file and environment variables.

    Resets to defaults, loads the YAML file if present, then applies
    environment overrides. Updates the global config instance and
    returns it.

    :param config_path: Optional path to config file (default: ~/.sparksub/config.yaml).
    :return: Updated global configuration instance.
    """
    global config

    config = Config()

    path = config_path or CONFIG_FILE
    if path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            _load_from_dict(config, data)
            log.debug(f"Loaded config from {path}")
        except (OSError, yaml.YAMLError) as e:
            # Continue with defaults + env vars
            log.warning(f"Failed to load config from {path}: {e}")

    _apply_env_vars(config)
    return config

def get_config() -> Config:
    """
    Get the global configuration instance.

    :return: Global configuration instance.
    """
    return config
