# backend/app/services/template_service.py
"""
Template rendering service for the coaching portal.

Provides centralized template rendering using Jinja2 for transactional
email bodies.
"""

from datetime import datetime
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import Environment, FileSystemLoader, TemplateNotFound
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import BRAND_NAME
from .base import BaseService
from .template_registry import TemplateRegistry

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


def _currency(value: Any) -> str:
    """Format a number as a CAD amount."""
    try:
        return f"CAD ${float(value):,.2f}"
    except (TypeError, ValueError):
        return str(value)


class TemplateService(BaseService):
    """
    Centralized template rendering service using Jinja2.

    The database session is optional; rendering never touches it.
    """

    def __init__(self, db: Optional[Session] = None):
        super().__init__(db)  # type: ignore[arg-type]

        self.env = Environment(
            loader=FileSystemLoader(TEMPLATE_DIR),
            autoescape=True,  # Enable autoescaping for security
            trim_blocks=True,  # Remove trailing newlines from blocks
            lstrip_blocks=True,  # Remove leading whitespace from blocks
        )
        self.env.filters["currency"] = _currency

        self.logger.debug(f"Template service initialized with template directory: {TEMPLATE_DIR}")

    def get_common_context(self) -> Dict[str, Any]:
        """
        Get common context variables used across all templates.

        Returns:
            Dictionary of common template variables
        """
        return {
            "brand_name": BRAND_NAME,
            "current_year": datetime.now().year,
            "portal_url": settings.portal_url.rstrip("/"),
            "support_email": settings.from_email,
        }

    @BaseService.measure_operation("render_template")
    def render_template(
        self,
        template_name: Union[TemplateRegistry, str],
        context: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> str:
        """
        Render a template with the given context.

        Args:
            template_name: Registry entry or path relative to the templates directory
            context: Dictionary of template variables
            **kwargs: Additional template variables

        Returns:
            Rendered template as string

        Raises:
            TemplateNotFound: If template doesn't exist
        """
        path = template_name.value if isinstance(template_name, TemplateRegistry) else template_name
        try:
            template = self.env.get_template(path)
        except TemplateNotFound:
            self.logger.error(f"Template not found: {path}")
            raise

        full_context = self.get_common_context()
        if context:
            full_context.update(context)
        full_context.update(kwargs)
        return template.render(full_context)
