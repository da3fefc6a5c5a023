#!/usr/bin/env python3
"""Tests for the UDP endpoint"""
# pylint: disable=redefined-outer-name

import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from lifx_protocol import NetworkError
from lifx_transport import DatagramQueue, open_endpoint


@pytest_asyncio.fixture
async def endpoint():
    """Unicast endpoint bound on an ephemeral port"""
    endpoint = await open_endpoint()
    yield endpoint
    endpoint.close()


@pytest.mark.asyncio
async def test_send_to_broadcast_without_permission(endpoint):
    """Test a send the socket refuses raises NetworkError from send itself"""
    with pytest.raises(NetworkError) as excinfo:
        endpoint.send(b'hello', ('255.255.255.255', 56700))
    assert isinstance(excinfo.value.__cause__, OSError)


@pytest.mark.asyncio
async def test_failed_send_leaves_receive_working(endpoint):
    """Test a send failure is not reported again by a later receive"""
    with pytest.raises(NetworkError):
        endpoint.send(b'hello', ('255.255.255.255', 56700))

    endpoint.datagram_received(b'reply', ('10.0.0.5', 56700))
    assert await asyncio.wait_for(endpoint.receive(), 1) == (b'reply', ('10.0.0.5', 56700))


@pytest.mark.asyncio
async def test_send_to_wrong_address_family(endpoint):
    """Test an IPv6 destination on an IPv4 socket raises NetworkError"""
    with pytest.raises(NetworkError):
        endpoint.send(b'hello', ('::1', 56700))


@pytest.mark.asyncio
async def test_send_after_close(endpoint):
    """Test sending on a closed endpoint raises NetworkError"""
    endpoint.close()
    with pytest.raises(NetworkError):
        endpoint.send(b'hello', ('127.0.0.1', 9))


@pytest.mark.asyncio
async def test_receive_error_keeps_its_place():
    """Test datagrams queued before a socket error come first, and later ones never do"""
    endpoint = DatagramQueue()
    endpoint.datagram_received(b'first', ('10.0.0.5', 56700))
    endpoint.error_received(OSError('network unreachable'))
    endpoint.datagram_received(b'late', ('10.0.0.6', 56700))

    assert await endpoint.receive() == (b'first', ('10.0.0.5', 56700))
    for _ in range(3):
        with pytest.raises(NetworkError) as excinfo:
            await asyncio.wait_for(endpoint.receive(), 1)
        assert str(excinfo.value.__cause__) == 'network unreachable'


@pytest.mark.asyncio
async def test_receive_after_connection_lost():
    """Test a closed socket ends every pending and later receive"""
    endpoint = DatagramQueue()
    waiting = asyncio.ensure_future(endpoint.receive())
    await asyncio.sleep(0)

    endpoint.connection_lost(None)
    with pytest.raises(NetworkError):
        await asyncio.wait_for(waiting, 1)
    with pytest.raises(NetworkError):
        await asyncio.wait_for(endpoint.receive(), 1)


@pytest.mark.asyncio
async def test_bind_failure(monkeypatch):
    """Test an OSError while binding is raised as NetworkError"""
    loop = asyncio.get_running_loop()
    monkeypatch.setattr(loop, 'create_datagram_endpoint',
                        AsyncMock(side_effect=OSError(98, 'Address already in use')))

    with pytest.raises(NetworkError) as excinfo:
        await open_endpoint()
    assert 'Address already in use' in str(excinfo.value)
