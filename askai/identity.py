"""ASKAI identity constants."""

__version__ = "0.4.0"
__codename__ = "ASKAI"
__tagline__ = "Say it. Review it. Run it."

BANNER = r"""
   ___   ____ __ __ ___   ____
  / _ | / __// //_// _ | /  _/
 / __ |_\ \ / ,<  / __ |_/ /
/_/ |_/___//_/|_|/_/ |_/___/
"""
