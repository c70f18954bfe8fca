"""Example plugins showing the manifest and hook contract end to end."""

from agentmount.plugins.examples.slack import SlackConfig, SlackPlugin, SlackState
from agentmount.plugins.examples.thread import InMemoryJournal, Thread, ThreadPlugin

__all__ = [
    "InMemoryJournal",
    "SlackConfig",
    "SlackPlugin",
    "SlackState",
    "Thread",
    "ThreadPlugin",
]
