from lnd_beacon.models import ChannelState, Connection, ConnectionStatus


def resolve(connection: Connection) -> ConnectionStatus:
    """Derive the connectivity status of one counterparty.

    Checked in this order: no peer link is always Offline; otherwise an
    active channel wins over opening and closing ones. A peer with no
    channels at all counts as Online.
    """
    if not connection.peers:
        return ConnectionStatus.OFFLINE
    states = connection.channel_states
    if ChannelState.ACTIVE in states:
        return ConnectionStatus.ONLINE
    if ChannelState.OPENING in states:
        return ConnectionStatus.CONNECTING
    if ChannelState.CLOSING in states:
        return ConnectionStatus.CLOSING
    return ConnectionStatus.ONLINE
