from fastapi import Request, WebSocket

from app.services.dice_system import DiceSystem


def get_dice_system(request: Request) -> DiceSystem:
    return request.app.state.dice_system


def get_ws_dice_system(websocket: WebSocket) -> DiceSystem:
    return websocket.app.state.dice_system
