import sys
from typing import Dict, List

from colorama import init, Fore, Style

from topology.models import ROOT_ID, RenderableGraph

brightgreen = Style.BRIGHT + Fore.GREEN
brightyellow = Style.BRIGHT + Fore.YELLOW
brightred = Style.BRIGHT + Fore.RED
brightblue = Style.BRIGHT + Fore.BLUE
reset = Style.RESET_ALL


def _parents(graph: RenderableGraph) -> Dict[str, str]:
	out = {}
	for e in graph.edges:
		if e.is_implicit:
			out[e.destination] = ROOT_ID
		else:
			out[e.source] = e.destination
	return out


def render_graph(graph: RenderableGraph) -> List[str]:
	"""Table view of the reconciled graph, one colored line per agent or custom node."""
	rows = [n for n in graph.nodes if n.kind in ("agent", "custom")]
	lines: List[str] = []
	if graph.stale:
		lines.append(brightred + "[!] Could not refresh topology, showing last known graph." + reset)
	if not rows:
		lines.append(brightyellow + "[*] No agents connected." + reset)
		return lines

	labels = {(e.source, e.destination): e.label for e in graph.edges}
	parents = _parents(graph)

	lines.append(brightgreen + f"{'ID':<10} {'Display':<10} {'Parent':<10} {'State':<7} {'Check-in':<12} {'Position':<18} {'Channel':<20}" + reset)
	lines.append(brightgreen + ("-" * 92) + reset)
	for n in rows:
		parent = parents.get(n.id, "-")
		if parent == ROOT_ID:
			label = labels.get((ROOT_ID, n.id))
		else:
			label = labels.get((n.id, parent))
		color = brightred if n.liveness == "dead" else brightgreen
		if n.is_newly_seen:
			color = brightblue
		state = "CUSTOM" if n.kind == "custom" else (n.liveness or "?").upper()
		if n.kind == "custom":
			color = brightyellow
		pos = f"({n.position[0]:.0f}, {n.position[1]:.0f})"
		flags = ""
		if n.locked:
			flags += " [locked]"
		if not n.visible:
			flags += " [hidden]"
		lines.append(color + f"{n.id:<10} {str(n.display_id):<10} {parent:<10} {state:<7} {str(n.checkin or '-'):<12} {pos:<18} {str(label or ''):<20}{flags}" + reset)

	s = graph.summary()
	totals = f"[*] {s['agents']} agents, {s['alive']} alive, {s['dead']} dead, {s['links']} links"
	if s["custom"]:
		totals += f", {s['custom']} custom"
	lines.append(brightblue + totals + reset)
	return lines


def print_graph(graph: RenderableGraph, out=None) -> None:
	out = out or sys.stdout
	for line in render_graph(graph):
		print(line, file=out)


def watch(poller) -> None:
	"""Poll in the foreground and redraw the table on every pass until Ctrl-C."""
	init()

	def _redraw(graph: RenderableGraph):
		print("\033[2J\033[H", end="")
		print_graph(graph)

	poller.on_graph = _redraw
	poller.start()
	try:
		while not poller.join(0.5):
			pass
	except KeyboardInterrupt:
		pass
	finally:
		poller.stop()
