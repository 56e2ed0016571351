# turnkit

Asyncio building blocks for TURN relays (RFC 5766). The package has:

- server-side allocations, each with its own permissions and channel
  bindings, that relay peer traffic back to the client;
- client-side records of channel numbers, permissions, retransmitted STUN
  transactions and periodic refresh timers;
- helpers for long-term credentials.

It has no dependencies outside the standard library.

## Installation

```
pip install turnkit
```

## Addresses and sockets

An address is a `(host, port)` tuple, for example `("127.0.0.1", 3478)`.

Allocations work on socket-like objects that you supply. Such an object has
these methods:

- `async send_to(data, addr)`
- `async recv_from(size)`, which returns `(data, addr)`
- `close()`, which may be a plain method or a coroutine.

## Five-tuples

`turnkit.five_tuple.FiveTuple` is a frozen dataclass with three fields:

- `protocol`: a `Protocol`, either `Protocol.UDP` or `Protocol.TCP`;
- `src_addr`;
- `dst_addr`.

By default it is UDP with both addresses set to `("0.0.0.0", 0)`. Its string
form is `UDP_1.2.3.4:5_6.7.8.9:10`. `fingerprint()` returns that string, and
allocations are keyed by it.

## Server side

### Manager

`turnkit.allocation_manager.Manager(relay_addr_generator)` holds the active
allocations. The generator is an object with a coroutine
`allocate_conn(use_ipv4, requested_port)` that returns
`(relay_socket, relay_addr)`.

- `await create_allocation(five_tuple, turn_socket, requested_port, lifetime)`
  creates an `Allocation`, starts its lifetime timer and starts relaying.
  `lifetime` is in seconds. It raises `AllocationError` in two cases: the
  lifetime is `0`, or the five-tuple already has an allocation.
- `get_allocation(five_tuple)` returns the allocation or `None`.
- `await delete_allocation(five_tuple)` removes the allocation and closes it.
- `await close()` closes every allocation it holds.
- `create_reservation(token, port)` stores a port under a token for 30
  seconds. It needs a running event loop. `get_reservation(token)` returns
  the port or `None`.
- `await get_random_even_port()` asks the generator for a socket with
  requested port 0, closes that socket and returns its port.

### Allocation

`turnkit.allocation.Allocation(turn_socket, relay_socket, relay_addr, five_tuple)`
does the relaying. While it runs, it reads datagrams from the relay socket:

- From a peer with a channel binding, it sends the data to the client as a
  TURN ChannelData frame.
- From a peer with a permission, it sends a STUN Data indication that
  carries XOR-PEER-ADDRESS and DATA.
- Anything else is dropped.

Permissions:

- Permissions are kept per peer IP address; the port is ignored.
- `add_permission(permission)` adds a permission. If the IP already has one,
  it refreshes that one instead.
- `has_permission(addr)` and `remove_permission(addr)` look up and remove
  permissions.
- A permission lasts 5 minutes.

Channel bindings:

- `add_channel_bind(channel_bind, lifetime)` adds a binding, or refreshes an
  existing binding with the same number. It also adds or refreshes the
  peer's permission.
- It raises `AllocationError` if the number is already bound to another
  peer, or if the peer is already bound to another number.
- `get_channel_addr(number)`, `get_channel_number(addr)` and
  `remove_channel_bind(number)` look up and remove bindings.

Lifetime:

- `start(lifetime)` starts the lifetime timer. When it expires, the
  allocation is removed from its manager and closed.
- `refresh(lifetime)` resets the timer.
- `stop()` stops it. It returns `True` if the timer was never started or
  had already run out.
- `await close()` stops all timers and closes both sockets. A second call
  raises `AllocationError`.

### Permissions and channel bindings

`turnkit.permission.Permission(addr)` and
`turnkit.channel_bind.ChannelBind(number, peer)` each have an expiry timer.

- `start(lifetime)` starts it.
- `refresh(lifetime)` resets it.
- `stop()` stops it.

When the timer runs out, the entry removes itself from the allocation's map.

## Credentials

```python
from datetime import timedelta
from turnkit.auth import (
    generate_auth_key,
    generate_long_term_credentials,
    LongTermAuthHandler,
)

password = "password"
key = generate_auth_key("user", "example.com", password)

username, credential = generate_long_term_credentials("secret", timedelta(hours=1))
handler = LongTermAuthHandler("secret")
key = handler.auth_handle(username, "example.com", ("127.0.0.1", 3478))
```

`generate_auth_key` returns the MD5 digest of `username:realm:password`.

`generate_long_term_credentials(shared_secret, duration)` takes `duration`
in seconds or as a `timedelta`. It returns two values:

- a username, which is the Unix time at which it expires;
- a password, which is the base64 HMAC-SHA1 of that username.

`LongTermAuthHandler.auth_handle` checks such a username and returns the
matching key. It raises `ValueError` if the username is not numeric or has
expired.

To implement your own lookup, subclass `turnkit.auth.AuthHandler`.

## Client side

### Channel bindings

`turnkit.binding.BindingManager` hands out channel numbers from `0x4000` to
`0x7FFF`, and goes back to `0x4000` after the last one.

- `create(addr)` returns a new `Binding`. A `Binding` has a `number`, an
  `addr`, a `BindingState` and a `refreshed_at` time.
- `find_by_addr`, `find_by_number`, `delete_by_addr`, `delete_by_number` and
  `size` look up, remove and count bindings.

### Permissions

`turnkit.client_permission.PermissionMap` stores a `Permission` per peer IP.
A `Permission` has a state, which is a `PermState`: `IDLE` or `PERMITTED`.

- `insert`, `find` and `delete` add, look up and remove permissions.
- `addrs()` returns every IP with port 0.

### Transactions

`turnkit.transaction.Transaction(TransactionConfig(...))` tracks a STUN
request whose initial send is up to you.

- `start_rtx_timer(conn, tr_map)` retransmits `raw` to the `ip:port` in
  `to`. The first wait is `interval` milliseconds, and each later wait is
  twice as long, up to 1600 ms.
- On the seventh timeout it removes itself from the `TransactionMap`. It
  then delivers a `TransactionResult` whose `err` is a `TransactionError`.
- `write_result(result)` delivers a result.
- `await wait_for_result()` waits for it, and `retries()` counts the
  retransmissions made.
- `close()` wakes waiters with `TransactionError`.

`TransactionMap` stores transactions by key. `close_and_delete_all()` closes
them all and clears the map.

### Periodic timer

`turnkit.periodic_timer.PeriodicTimer(timer_id, interval)` calls
`await handler.on_timeout(timer_id)` every `interval` seconds. The id is a
`TimerIdRefresh`, either `ALLOC` or `PERMS`.

- `start(handler)` starts it, and returns `False` if it is already running.
- `stop()` stops it.
- `is_running()` tells you whether it runs.

## What the package does not do

- It does not parse or build STUN messages in general. The only message it
  writes is the Data indication an allocation relays.
- There is no TURN server that reads requests from a socket and answers
  them.
- There is no TURN client that sends Allocate, Refresh, CreatePermission or
  ChannelBind requests.
- It has no relay address generator and no command-line programs.

## Running the tests

```
pip install -e ".[test]"
pytest
```