"""Shared jinja2 environment for pages and email bodies."""

import jinja2

from csv_rsvp.config import TEMPLATES_DIR


def make_environment() -> jinja2.Environment:
    # HTML pages are autoescaped; the plain-text email bodies are not.
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(TEMPLATES_DIR),
        autoescape=jinja2.select_autoescape(['html']),
        keep_trailing_newline=True,
    )
