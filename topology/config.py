import os
from dataclasses import dataclass

DEAD_AFTER_SECONDS = float(os.getenv("TOPOLOGY_DEAD_AFTER", "300"))
LIVENESS_DELAY_SECONDS = float(os.getenv("TOPOLOGY_LIVENESS_DELAY", "1.2"))
PULSE_WINDOW_SECONDS = float(os.getenv("TOPOLOGY_PULSE_WINDOW", "5"))
POLL_INTERVAL_SECONDS = float(os.getenv("TOPOLOGY_POLL_INTERVAL", "5"))

LAYOUT_MODE = os.getenv("TOPOLOGY_LAYOUT_MODE", "stack")

POSITIONS_POLICY = os.getenv("TOPOLOGY_POSITIONS", "memory")
POSITIONS_PATH = os.path.expanduser(os.getenv("TOPOLOGY_POSITIONS_PATH", "~/.topology/graph_positions.json"))


@dataclass
class EngineConfig:
	dead_after: float = 300.0
	liveness_delay: float = 1.2
	pulse_window: float = 5.0
	layout_mode: str = "stack"  # stack | tree

	@classmethod
	def from_env(cls) -> "EngineConfig":
		return cls(
			dead_after=DEAD_AFTER_SECONDS,
			liveness_delay=LIVENESS_DELAY_SECONDS,
			pulse_window=PULSE_WINDOW_SECONDS,
			layout_mode=LAYOUT_MODE,
		)
