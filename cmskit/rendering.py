"""Page and block rendering.

Pages are rendered block by block. Each block is looked up by its component
slug in a BlockRegistry that the caller passes in; blocks without a registered
renderer fall back to a plain listing of their content.

Renderers return HTML as ``markupsafe.Markup``. Plain strings returned by a
renderer are escaped.
"""

import json
import logging
from typing import Any, Callable, Dict, Iterable, Iterator, Mapping, Optional, Union

from markupsafe import Markup, escape

from cmskit.types import PageComponent


logger = logging.getLogger(__name__)

BlockRenderer = Callable[[PageComponent, Optional[str]], Union[str, Markup]]
"""A renderer receives the component and an optional CSS class name."""


class BlockRegistry:
    """Maps component slugs to block renderers.

    Registering a slug twice replaces the earlier renderer.

    Examples:
        >>> registry = BlockRegistry()
        >>> registry.register("hero", lambda c, cls: Markup("<h1>%s</h1>") % c.data["title"])
        >>> "hero" in registry
        True
    """

    def __init__(self, renderers: Optional[Mapping[str, BlockRenderer]] = None):
        self._renderers: Dict[str, BlockRenderer] = dict(renderers or {})

    def register(self, slug: str, renderer: BlockRenderer) -> None:
        if slug in self._renderers:
            logger.debug("Replacing block renderer for '%s'", slug)
        self._renderers[slug] = renderer

    def unregister(self, slug: str) -> None:
        self._renderers.pop(slug, None)

    def get(self, slug: str) -> Optional[BlockRenderer]:
        return self._renderers.get(slug)

    def __contains__(self, slug: object) -> bool:
        return slug in self._renderers

    def __iter__(self) -> Iterator[str]:
        return iter(self._renderers)

    def __len__(self) -> int:
        return len(self._renderers)


def _class_attr(class_name: Optional[str]) -> Markup:
    if not class_name:
        return Markup("")
    return Markup(' class="%s"') % class_name


def _render_fallback(component: PageComponent, class_name: Optional[str]) -> Markup:
    parts = []
    for key, value in component.data.items():
        text = value if isinstance(value, str) else json.dumps(value)
        parts.append(Markup('<div data-field="%s">%s</div>') % (key, text))
    return (
        Markup('<div data-cms-id="%s" data-cms-slug="%s"%s>')
        % (component.id, component.component_slug, _class_attr(class_name))
        + Markup("").join(parts)
        + Markup("</div>")
    )


def render_block(
    component: PageComponent,
    registry: BlockRegistry,
    class_name: Optional[str] = None,
) -> Markup:
    """Render one page component with its registered renderer or the fallback."""
    renderer = registry.get(component.component_slug)
    if renderer is None:
        logger.debug(
            "No renderer registered for block '%s'; using fallback", component.component_slug
        )
        return _render_fallback(component, class_name)
    return escape(renderer(component, class_name))


def render_page(
    components: Iterable[PageComponent],
    registry: BlockRegistry,
    class_name: Optional[str] = None,
    block_class_names: Optional[Mapping[str, str]] = None,
) -> Markup:
    """Render a page's components in ``order`` (missing order counts as 0).

    Args:
        components: The page's components
        registry: Renderers to use
        class_name: CSS class of the wrapping element
        block_class_names: CSS class per component slug
    """
    block_class_names = block_class_names or {}
    ordered = sorted(components, key=lambda c: c.order or 0)
    blocks = Markup("").join(
        render_block(c, registry, block_class_names.get(c.component_slug)) for c in ordered
    )
    return Markup("<div%s>") % _class_attr(class_name) + blocks + Markup("</div>")


_TEXT_TAGS = {"p", "span", "div", "h1", "h2", "h3", "h4", "h5", "h6"}


def render_text(value: Any, tag: str = "p", class_name: Optional[str] = None) -> Markup:
    """Render a text value inside ``tag``. Empty values render nothing."""
    if not value:
        return Markup("")
    if tag not in _TEXT_TAGS:
        raise ValueError(f"Unsupported text tag: {tag}")
    return Markup("<%s%s>%s</%s>") % (Markup(tag), _class_attr(class_name), value, Markup(tag))


def render_rich_text(value: Any, class_name: Optional[str] = None) -> Markup:
    """Render trusted HTML from the CMS. The server is responsible for sanitizing it."""
    if not value:
        return Markup("")
    return Markup("<div%s>") % _class_attr(class_name) + Markup(str(value)) + Markup("</div>")


def render_media(
    value: Union[str, Mapping[str, Any], None],
    alt: str = "",
    class_name: Optional[str] = None,
) -> Markup:
    """Render an image from a URL string or a ``{"url": ..., "alt": ...}`` mapping."""
    if not value:
        return Markup("")
    if isinstance(value, str):
        src, image_alt = value, alt
    else:
        src = value.get("url")
        if not src:
            return Markup("")
        image_alt = value.get("alt") or alt
    return Markup('<img src="%s" alt="%s"%s>') % (src, image_alt, _class_attr(class_name))


__all__ = [
    "BlockRenderer",
    "BlockRegistry",
    "render_block",
    "render_page",
    "render_text",
    "render_rich_text",
    "render_media",
]
