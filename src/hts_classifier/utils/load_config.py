import os

import yaml

DEFAULT_CONFIG_PATH = "config.yaml"


def load_config_file(file_path=None):
    """
    Loads the configuration from the specified YAML file.

    Args:
        file_path (str): Path to the YAML configuration file. Falls back to the
            HTS_CONFIG_PATH environment variable, then to config.yaml.

    Returns:
        dict: Parsed configuration as a dictionary.
    """
    file_path = file_path or os.getenv("HTS_CONFIG_PATH", DEFAULT_CONFIG_PATH)
    with open(file_path, "r") as file:
        return yaml.safe_load(file) or {}
