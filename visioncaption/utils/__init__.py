from .config import load_config, load_env, expand_env, get_section

__all__ = ['load_config', 'load_env', 'expand_env', 'get_section']
