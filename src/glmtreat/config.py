"""Configuration handling for threshold differential expression testing."""

import tomli
import tomli_w
from pathlib import Path
from typing import Any, Dict, Optional, Union

from glmtreat.exceptions import InvalidThreshold
from glmtreat.models import ThresholdSpec


class AnalysisConfig:
    """Configuration class for the threshold testing pipeline."""

    def __init__(self, config_path: Union[str, Path]):
        """Initialise the configuration from a TOML file.

        Args:
            config_path: Path to the TOML configuration file
        """
        self.config_path = config_path

        try:
            with open(config_path, "rb") as f:
                self.config: Dict[str, Any] = tomli.load(f)
        except FileNotFoundError:
            raise ValueError(f"Error loading configuration file: {config_path} does not exist")
        except tomli.TOMLDecodeError as e:
            raise ValueError(f"Error loading configuration file: {str(e)}")

        if 'threshold' not in self.config:
            raise ValueError("Missing required section in configuration: threshold")

        self.threshold_params = self.config["threshold"]
        self.decide_params = self.config.get("decide", {})
        self.analysis_params = self.config.get("analysis", {})
        self.output_config = self.config.get("output", {})

        self.fdr_cutoff = float(self.decide_params.get("fdr_cutoff", 0.05))
        self.lfc_filter = float(self.decide_params.get("lfc_filter", 0.0))
        if not 0 <= self.fdr_cutoff <= 1:
            raise InvalidThreshold(f"fdr_cutoff must lie in [0, 1], got {self.fdr_cutoff}")
        if self.lfc_filter < 0:
            raise InvalidThreshold(f"lfc_filter must be >= 0, got {self.lfc_filter}")

        self.num_threads = int(self.analysis_params.get("num_threads", 1))
        self.progress = bool(self.analysis_params.get("progress", True))

        # Fail on a bad threshold at load time rather than at test time
        self.threshold_spec = ThresholdSpec(
            lfc=self.threshold_params.get("lfc", 0.0),
            null=self.threshold_params.get("null", "interval"),
        )

    def get_threshold_spec(self) -> ThresholdSpec:
        """Get the fold-change threshold used when testing.

        Returns:
            ThresholdSpec built from the [threshold] section
        """
        return self.threshold_spec

    def get_output_path(self, subdir: Optional[str] = None) -> Path:
        """Get the path to the output directory or a subdirectory within it.

        Args:
            subdir: Optional subdirectory name within the output directory

        Returns:
            Path object for the requested directory
        """
        base_path = Path(self.output_config.get("directory", "results"))
        if subdir:
            return base_path / subdir
        return base_path

    def save_config(self, output_path: Union[str, Path]) -> None:
        """Save the configuration to a TOML file.

        Args:
            output_path: Path to save the configuration file
        """
        with open(output_path, "wb") as f:
            tomli_w.dump(self.config, f)
