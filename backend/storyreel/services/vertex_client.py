"""Vertex AI client construction using the google-genai SDK.

Authentication is handled automatically via Application Default Credentials
(ADC). Clients are built once by the entry point and handed to the
components that need them.

Usage:
    from storyreel.services.vertex_client import create_vertex_client

    client = create_vertex_client(settings.google_cloud)
    client = create_vertex_client(settings.google_cloud, location="global")
"""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from google import genai

from storyreel.config import GoogleCloudConfig

# Load .env for GOOGLE_APPLICATION_CREDENTIALS (ADC)
load_dotenv(Path(__file__).resolve().parent.parent.parent.parent / ".env")

# Models that must use the global endpoint
GLOBAL_REGION_MODELS = {
    "gemini-3-flash-preview",
    "gemini-3-pro-preview",
}


def location_for_model(model_id: str, default_location: str) -> str:
    """Return the Vertex AI location needed for a given model ID."""
    if model_id in GLOBAL_REGION_MODELS:
        return "global"
    return default_location


def create_vertex_client(
    google_cloud: GoogleCloudConfig,
    location: Optional[str] = None,
) -> genai.Client:
    """Create a Vertex AI client for the given location.

    Args:
        google_cloud: Project/location configuration.
        location: GCP region (e.g., "us-central1", "global").
                  Defaults to google_cloud.location.

    Raises:
        ValueError: If no project ID is configured.
    """
    if not google_cloud.project_id:
        raise ValueError(
            "google_cloud.project_id is not set "
            "(set STORYREEL_GOOGLE_CLOUD__PROJECT_ID or config.yaml)"
        )

    return genai.Client(
        vertexai=google_cloud.use_vertex_ai,
        project=google_cloud.project_id,
        location=location or google_cloud.location,
    )
