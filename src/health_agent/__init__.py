"""AI health agent.

Answers natural-language questions about personal health trends using the
user's own biometric history. Nine metric time series are queried
concurrently, normalized and summarized into one JSON document, which is sent
with the question to a chat completion endpoint.

Modules:
    config: Configuration management using pydantic-settings
    sources: Health data providers (InfluxDB, Health Auto Export files)
    normalizer: Unit conversion and sample validation
    executor: Per-metric windowed sample queries
    aggregation: Concurrent fan-out/fan-in into a summary document
    serializer: Summary document JSON rendering
    completion: Remote chat completion client
    conversation: Conversation state machine and history

Example:
    Ask a question from the command line::

        $ uv run health-agent ask "How is my sleep?"
"""

__version__ = "0.1.0"

from .config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
