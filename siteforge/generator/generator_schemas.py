"""Generator agent response schemas"""
from pydantic import BaseModel, ConfigDict, Field

from siteforge.models.schemas import SharedAssets


class SharedAssetsPayload(BaseModel):
    """JSON returned by the shared-asset call; every key optional, unknown keys ignored"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    stylesheet: str = Field(default="", alias="style.css")
    script: str = Field(default="", alias="script.js")
    nav_html: str = ""
    footer_html: str = ""

    def to_assets(self, defaults: SharedAssets) -> SharedAssets:
        """Fill blanks from the built-in defaults."""
        return SharedAssets(
            stylesheet_text=self.stylesheet.strip() or defaults.stylesheet_text,
            script_text=self.script.strip() or defaults.script_text,
            nav_fragment=self.nav_html.strip() or defaults.nav_fragment,
            footer_fragment=self.footer_html.strip() or defaults.footer_fragment,
        )


SHARED_ASSETS_RESPONSE_SCHEMA = {
    "title": "SharedAssetsResponse",
    "type": "object",
    "properties": {
        "style.css": {"type": "string", "description": "Minimal shared stylesheet"},
        "script.js": {"type": "string", "description": "Shared vanilla JavaScript"},
        "nav_html": {"type": "string", "description": "Navigation fragment pasted into every page"},
        "footer_html": {"type": "string", "description": "Footer fragment pasted into every page"}
    },
    "required": ["style.css", "script.js", "nav_html", "footer_html"],
    "additionalProperties": False
}
