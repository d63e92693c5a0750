"""
Configuration Management
========================
Stacking settings with validation and defaults.

Every stage reads its own section, so a stage can be driven either by a
loaded StackConfig or by a section built in code.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, Tuple
import yaml

DEFAULT_PENALTIES: Tuple[float, ...] = (1e-6, 1e-5, 1e-4, 1e-3, 1e-2, 1e-1)

REGRESSION_METRICS = ('rmse', 'mae')
CLASSIFICATION_METRICS = ('brier', 'log_loss')
RENORMALIZE_POLICIES = ('preserve_sum', 'none')
PARALLEL_BACKENDS = ('threading', 'loky', 'multiprocessing', 'sequential')


@dataclass
class RegistryConfig:
    """Candidate registration settings."""
    drop_duplicate_predictions: bool = True


@dataclass
class BlendConfig:
    """Blending solver settings."""
    penalty: Tuple[float, ...] = DEFAULT_PENALTIES
    mixture: float = 1.0  # 1 = lasso, 0 = ridge
    non_negative: bool = True
    metric: Optional[str] = None  # None picks rmse / brier by mode
    n_folds: int = 5
    one_se_rule: bool = True
    max_iter: int = 10000
    tol: float = 1e-4
    random_state: Optional[int] = 42
    n_jobs: int = 1
    backend: str = "threading"


@dataclass
class RefitConfig:
    """Member refitting settings."""
    renormalize: str = "preserve_sum"
    n_jobs: int = 1
    backend: str = "threading"


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    file: Optional[str] = None
    max_size_mb: int = 10
    backup_count: int = 3
    console: bool = True


@dataclass
class StackConfig:
    """
    Main configuration class.

    Loads from YAML file with sensible defaults.
    All settings are validated on load.
    """
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    blend: BlendConfig = field(default_factory=BlendConfig)
    refit: RefitConfig = field(default_factory=RefitConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    _config_path: Optional[Path] = field(default=None, repr=False)

    @classmethod
    def load(cls, config_path: str = "stacks.yaml") -> "StackConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to config file

        Returns:
            StackConfig instance with loaded values
        """
        path = Path(config_path)

        if not path.exists():
            return cls()

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        config = cls()
        config._config_path = path

        config.registry = RegistryConfig(**(data.get('registry') or {}))

        blend = dict(data.get('blend') or {})
        if 'penalty' in blend:
            penalty = blend['penalty']
            if isinstance(penalty, (int, float)):
                penalty = [penalty]
            blend['penalty'] = tuple(float(p) for p in penalty)
        config.blend = BlendConfig(**blend)

        config.refit = RefitConfig(**(data.get('refit') or {}))
        config.logging = LoggingConfig(**(data.get('logging') or {}))

        config.validate()

        return config

    def validate(self):
        """Validate configuration values."""
        validate_blend(self.blend)
        validate_refit(self.refit)

        if self.logging.level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Unknown log level: {self.logging.level}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            'registry': {
                'drop_duplicate_predictions': self.registry.drop_duplicate_predictions,
            },
            'blend': {
                'penalty': list(self.blend.penalty),
                'mixture': self.blend.mixture,
                'non_negative': self.blend.non_negative,
                'metric': self.blend.metric,
                'n_folds': self.blend.n_folds,
                'one_se_rule': self.blend.one_se_rule,
                'max_iter': self.blend.max_iter,
                'tol': self.blend.tol,
                'random_state': self.blend.random_state,
                'n_jobs': self.blend.n_jobs,
                'backend': self.blend.backend,
            },
            'refit': {
                'renormalize': self.refit.renormalize,
                'n_jobs': self.refit.n_jobs,
                'backend': self.refit.backend,
            },
            'logging': {
                'level': self.logging.level,
                'file': self.logging.file,
                'max_size_mb': self.logging.max_size_mb,
                'backup_count': self.logging.backup_count,
                'console': self.logging.console,
            },
        }


def validate_blend(blend: BlendConfig):
    """Validate blending settings."""
    if len(blend.penalty) == 0:
        raise ValueError("penalty grid must contain at least one value")

    if any(p <= 0 for p in blend.penalty):
        raise ValueError(f"penalty values must be > 0, got {list(blend.penalty)}")

    if not 0 <= blend.mixture <= 1:
        raise ValueError(f"mixture must be 0-1, got {blend.mixture}")

    if blend.metric is not None and blend.metric not in REGRESSION_METRICS + CLASSIFICATION_METRICS:
        raise ValueError(f"Unknown metric: {blend.metric}")

    if blend.n_folds < 2:
        raise ValueError(f"n_folds must be >= 2, got {blend.n_folds}")

    if blend.max_iter < 1:
        raise ValueError(f"max_iter must be >= 1, got {blend.max_iter}")

    if blend.backend not in PARALLEL_BACKENDS:
        raise ValueError(f"Unknown parallel backend: {blend.backend}")


def validate_refit(refit: RefitConfig):
    """Validate refitting settings."""
    if refit.renormalize not in RENORMALIZE_POLICIES:
        raise ValueError(
            f"renormalize must be one of {RENORMALIZE_POLICIES}, got {refit.renormalize}"
        )

    if refit.backend not in PARALLEL_BACKENDS:
        raise ValueError(f"Unknown parallel backend: {refit.backend}")
