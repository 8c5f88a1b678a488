"""Screen Pilot - orchestration core for computer-use agents."""

__version__ = "0.1.0"

from screen_pilot.agent import Agent, AgentSession
from screen_pilot.config import Config

__all__ = ["Agent", "AgentSession", "Config", "__version__"]
