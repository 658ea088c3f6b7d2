"""Generation settings shared by the CLI and the generators."""

from typing import Literal

from pydantic import BaseModel

from api_bindgen.naming import snake_case

OPENAPI_VERSION = "3.0.3"


class GenerateOptions(BaseModel):
    """Knobs for one compilation run. Unset values fall back to the descriptor."""

    title: str | None = None
    version: str | None = None
    output_format: Literal["yaml", "json"] = "yaml"

    def openapi_filename(self) -> str:
        return f"openapi.{self.output_format}"

    @staticmethod
    def server_filename(descriptor_stem: str) -> str:
        """pets.v1 -> pets_v1_http.py, an importable module name."""
        return f"{snake_case(descriptor_stem)}_http.py"
