"""Sphinx configuration for litestar-flagsync documentation."""

from __future__ import annotations

import os
import sys
from datetime import datetime

# Add the source directory to the path for autodoc
sys.path.insert(0, os.path.abspath("../src"))

# -- Project information -----------------------------------------------------

project = "litestar-flagsync"
copyright = f"{datetime.now().year}, Jacob Coffee"  # noqa: A001
author = "Jacob Coffee"
release = "0.1.0"
version = "0.1.0"

# -- General configuration ---------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.autosummary",
    "sphinx.ext.intersphinx",
    "sphinx.ext.viewcode",
    "sphinx.ext.napoleon",
    "sphinx_copybutton",
    "sphinx_design",
    "sphinx_autodoc_typehints",
    "myst_parser",
]

templates_path = ["_templates"]
exclude_patterns = ["_build", "Thumbs.db", ".DS_Store"]
source_suffix = {".rst": "restructuredtext", ".md": "markdown"}
master_doc = "index"
language = "en"

# -- Napoleon settings -------------------------------------------------------

napoleon_google_docstring = True
napoleon_numpy_docstring = True
napoleon_include_init_with_doc = True
napoleon_use_admonition_for_examples = True
napoleon_use_admonition_for_notes = True

# -- Autodoc settings --------------------------------------------------------

autodoc_default_options = {
    "members": True,
    "member-order": "bysource",
    "special-members": "__init__",
    "undoc-members": True,
    "exclude-members": "__weakref__",
    "show-inheritance": True,
    "no-value": True,  # Don't show default values in signature
}
autodoc_class_signature = "separated"
autodoc_typehints = "description"
autodoc_inherit_docstrings = True
autosummary_generate = False

# Mock optional dependencies that may not be installed
autodoc_mock_imports = [
    "redis",
    "structlog",
]

# -- Type hints settings -----------------------------------------------------

typehints_fully_qualified = False
always_document_param_types = True
typehints_document_rtype = True

# -- Intersphinx settings ----------------------------------------------------

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "litestar": ("https://docs.litestar.dev/latest/", None),
    "httpx": ("https://www.python-httpx.org/", None),
    "redis": ("https://redis-py.readthedocs.io/en/stable/", None),
}

# -- MyST Parser settings ----------------------------------------------------

myst_enable_extensions = [
    "colon_fence",
    "deflist",
    "fieldlist",
    "html_admonition",
    "html_image",
    "linkify",
    "replacements",
    "smartquotes",
    "strikethrough",
    "substitution",
    "tasklist",
]
myst_heading_anchors = 3

# -- Copy button settings ----------------------------------------------------

copybutton_prompt_text = r">>> |\.\.\. |\$ |In \[\d*\]: | {2,5}\.\.\.: | {5,8}: "
copybutton_prompt_is_regexp = True
copybutton_remove_prompts = True

# -- Suppress warnings -------------------------------------------------------

# Suppress warnings:
# - myst.header: MyST parser header warnings
# - ref.python: Python cross-reference warnings (optional deps not installed)
suppress_warnings = ["myst.header", "ref.python"]

# Disable nitpicky mode to avoid false positives on missing references
nitpicky = False

# -- HTML output -------------------------------------------------------------

html_theme = "shibuya"
html_title = "litestar-flagsync"

html_theme_options = {
    "accent_color": "bronze",
    "github_url": "https://github.com/JacobCoffee/litestar-flagsync",
    "nav_links": [
        {"title": "Litestar", "url": "https://litestar.dev/"},
        {"title": "PyPI", "url": "https://pypi.org/project/litestar-flagsync/"},
    ],
}
