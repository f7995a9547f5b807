# liveshop/core/stream_transitions.py
"""
Máquina de Estados dos Vivos
============================

Função de transição total: qualquer par (estado, evento) fora da tabela
levanta InvalidTransition. Não existe estado "padrão".

Terminais: FINISHED, CANCELLED, BANNED
Semi-terminais: MISSED (substituído por um vivo de reposição) e
PENDING_REPROGRAMMATION (só avança quando a loja escolhe nova data)
"""

from typing import Dict, Tuple

from liveshop.core.exceptions import InvalidTransition
from liveshop.core.utils.enums import StreamEvent, StreamStatus

TRANSITIONS: Dict[Tuple[StreamStatus, StreamEvent], StreamStatus] = {
    (StreamStatus.UPCOMING, StreamEvent.START): StreamStatus.LIVE,
    (StreamStatus.UPCOMING, StreamEvent.CANCEL): StreamStatus.CANCELLED,
    (StreamStatus.UPCOMING, StreamEvent.BAN): StreamStatus.BANNED,
    (StreamStatus.UPCOMING, StreamEvent.MARK_MISSED): StreamStatus.MISSED,
    (StreamStatus.UPCOMING, StreamEvent.RESCHEDULE): StreamStatus.UPCOMING,
    (StreamStatus.LIVE, StreamEvent.FINISH): StreamStatus.FINISHED,
    (StreamStatus.LIVE, StreamEvent.EXTEND): StreamStatus.LIVE,
    (StreamStatus.LIVE, StreamEvent.BAN): StreamStatus.BANNED,
    (StreamStatus.LIVE, StreamEvent.MARK_MISSED): StreamStatus.MISSED,
    (StreamStatus.PENDING_REPROGRAMMATION, StreamEvent.RESCHEDULE): StreamStatus.UPCOMING,
}

TERMINAL_STATUSES = frozenset({
    StreamStatus.FINISHED,
    StreamStatus.CANCELLED,
    StreamStatus.BANNED,
})


def next_status(current, event) -> StreamStatus:
    """
    Retorna o próximo estado para o evento.

    Aceita strings, mas valores fora do enum são rejeitados.

    Raises:
        InvalidTransition: estado/evento desconhecido ou transição não permitida
    """
    try:
        status = StreamStatus(current)
        stream_event = StreamEvent(event)
    except ValueError:
        raise InvalidTransition(
            f"Estado ou evento desconhecido: {current!r} / {event!r}",
            status=str(current),
            event=str(event),
        )

    target = TRANSITIONS.get((status, stream_event))
    if target is None:
        raise InvalidTransition(
            f"Não é possível aplicar {stream_event.value} a um vivo {status.value}",
            status=status.value,
            event=stream_event.value,
        )
    return target


def can_transition(current, event) -> bool:
    try:
        next_status(current, event)
        return True
    except InvalidTransition:
        return False


def apply_event(stream, event) -> StreamStatus:
    """Aplica o evento no objeto Stream e devolve o novo estado"""
    stream.status = next_status(stream.status, event)
    return stream.status
