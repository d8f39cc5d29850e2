# topology_server/websocket_graph.py
import asyncio, json, hashlib, uuid
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from contextlib import suppress

from topology import ReconciliationEngine, TopologyStore
from topology.config import EngineConfig
from topology.logutil import bind, get_logger

from . import config
from .dependencies import get_store

router = APIRouter()
logger = get_logger("server.ws")

# ---------- helpers ----------------------------------------------------------

def _graph_frame(engine: ReconciliationEngine, store: TopologyStore) -> Dict[str, Any]:
	graph = engine.reconcile(store.snapshot())
	return {"type": "graph", "graph": graph.to_dict()}

def _hash_frame(frame: Dict[str, Any]) -> str:
	# check-in text ticks every second; it should not force a push on its own
	graph = dict(frame.get("graph") or {})
	graph["nodes"] = [{k: v for k, v in n.items() if k != "checkin"} for n in graph.get("nodes", [])]
	blob = json.dumps(graph, sort_keys=True, separators=(",", ":"), default=str).encode()
	return hashlib.sha1(blob).hexdigest()

async def _ws_send(ws: WebSocket, payload: Dict[str, Any]):
	try:
		await ws.send_text(json.dumps(payload, separators=(",", ":"), default=str))
	except WebSocketDisconnect:
		raise
	except RuntimeError:
		# socket already closed; the writer exits on its next iteration
		pass

# ---------- command handlers -------------------------------------------------

async def _cmd_refresh(ws, req, engine, store):
	frame = _graph_frame(engine, store)
	frame["req_id"] = req.get("req_id")
	await _ws_send(ws, frame)

async def _cmd_move(ws, req, engine, store):
	node_id = str(req.get("node_id") or "")
	try:
		x, y = float(req.get("x")), float(req.get("y"))
	except (TypeError, ValueError):
		return await _ws_send(ws, {"type":"error","req_id":req.get("req_id"),"error":"x and y must be numbers"})
	if not engine.move(node_id, x, y):
		return await _ws_send(ws, {"type":"error","req_id":req.get("req_id"),"error":"Node cannot be moved"})
	await _ws_send(ws, {"type":"moved","req_id":req.get("req_id"),"node_id":node_id,"position":[x, y]})

async def _cmd_show_hidden(ws, req, engine, store):
	engine.include_hidden = bool(req.get("value"))
	await _cmd_refresh(ws, req, engine, store)

# ---------- the websocket route ---------------------------------------------

@router.websocket("/ws/graph")
async def graph_ws(ws: WebSocket, store: TopologyStore = Depends(get_store)):
	await ws.accept()

	# each connection is an independent graph view with its own seen ids/positions
	engine = ReconciliationEngine(config=EngineConfig.from_env())
	log = bind(logger, conn=uuid.uuid4().hex[:8])
	log.info("graph view opened")

	last_hash = None
	lock = asyncio.Lock()

	async def push_if_changed():
		nonlocal last_hash
		async with lock:
			frame = _graph_frame(engine, store)
			h = _hash_frame(frame)
			if h != last_hash:
				await _ws_send(ws, frame)
				last_hash = h

	async def writer():
		try:
			while True:
				await push_if_changed()
				await asyncio.sleep(config.WS_PUSH_INTERVAL)
		except (WebSocketDisconnect, asyncio.CancelledError):
			pass

	async def reader():
		actions = {
			"refresh":     _cmd_refresh,
			"move":        _cmd_move,
			"show_hidden": _cmd_show_hidden,
			"ping":        lambda w, r, e, s: _ws_send(w, {"type":"pong","req_id":r.get("req_id")}),
		}
		while True:
			raw = await ws.receive_text()
			try:
				req = json.loads(raw)
			except ValueError:
				await _ws_send(ws, {"type":"error","error":"Invalid JSON"}); continue
			if not isinstance(req, dict):
				await _ws_send(ws, {"type":"error","error":"Invalid request"}); continue
			act = str(req.get("action") or "").lower()
			fn = actions.get(act)
			if not fn:
				await _ws_send(ws, {"type":"error","req_id":req.get("req_id"),"error":f"Unknown action '{act}'"}); continue
			async with lock:
				await fn(ws, req, engine, store)

	writer_task = asyncio.create_task(writer())
	try:
		await reader()
	except WebSocketDisconnect:
		pass
	finally:
		writer_task.cancel()
		with suppress(asyncio.CancelledError):
			await writer_task
		log.info("graph view closed")
