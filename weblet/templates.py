"""Loading Jinja2 templates for :meth:`weblet.context.Context.render`."""

from __future__ import annotations

import glob
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from jinja2 import Environment, FileSystemLoader, Template, select_autoescape


def load_templates(pattern: str, filters: Optional[Mapping[str, Callable[..., Any]]] = None) -> Dict[str, Template]:
    """Load every file matching the glob ``pattern``.

    The first file (in sorted order) is the layout. It is not returned itself
    but is available to the other templates as the ``layout`` global, so a
    page starts with ``{% extends layout %}``. The result maps file names to
    templates and can go straight into ``MuxOptions.templates``.

    Errors are raised at load time, a broken template should stop start up.
    """

    files = sorted(glob.glob(pattern))
    if not files:
        raise ValueError(f"No templates match {pattern!r}")

    directory = Path(files[0]).parent
    env = Environment(
        loader=FileSystemLoader(str(directory)),
        autoescape=select_autoescape(default_for_string=True, default=True),
    )
    if filters:
        env.filters.update(filters)

    layout = Path(files[0]).name
    env.globals["layout"] = layout
    env.get_template(layout)

    templates: Dict[str, Template] = {}
    for file in files[1:]:
        name = Path(file).relative_to(directory).as_posix()
        templates[Path(file).name] = env.get_template(name)
    return templates


__all__ = ["load_templates"]
