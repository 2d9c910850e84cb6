"""
AutoDev Identity

Version, codename and banner shared by the CLI and PR bodies.
"""

__version__ = "1.0.0"
__codename__ = "AUTODEV"
__tagline__ = "Research first. Patch second. Ship a PR."

BANNER = r"""
    _         _        ____
   / \  _   _| |_ ___ |  _ \  _____   __
  / _ \| | | | __/ _ \| | | |/ _ \ \ / /
 / ___ \ |_| | || (_) | |_| |  __/\ V /
/_/   \_\__,_|\__\___/|____/ \___| \_/
"""
