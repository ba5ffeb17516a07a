# trunk

Building blocks for a web asset build pipeline: checking version
requirements, noticing newer releases, deciding when a file change should
start a rebuild, telling browsers to reload, extracting downloaded archives
and serving the built output with live values injected into HTML pages.

## Modules

- `trunk.version` — semantic versions (`Version`, `parse_version`) and
  version requirements (`VersionReq`, `parse_requirement`,
  `VersionReq.matches`). `enforce_version_with(required, actual)` raises
  `VersionMismatchError` when the running version does not meet a project's
  requirement; the requirement `*` accepts every version, pre-releases
  included. Unparsable text raises `VersionError`.
- `trunk.update_check` — a once-a-day check for newer releases.
  `state_file()` is the JSON file in the user state directory that remembers
  the last check; `need_check(file, now)` returns a `CheckState` telling
  whether a check is due; `record_checked(versions, file, now)` writes the
  state (ignoring errors); `most_recent(fetch)` picks the newest release and
  pre-release from published, non-yanked versions; `announce_version(versions,
  current)` returns an update notice when something newer exists;
  `update_check(skip)` runs `perform_update_check()` on a background thread.
- `trunk.ws` — build states (`WsState`) and the JSON messages
  (`ClientMessage`, `decode_message`) sent to the browser over the
  autoreload websocket. `messages_for_states(states)` drops the first ok
  state, so a fresh connection does not reload at once, and reports every
  failure.
- `trunk.archive` — extracting a single file from a `.tar.gz`, a `.zip` or a
  bare binary download (`Archive`, `ArchiveKind`). Entry paths are matched
  with their first directory dropped; file modes are restored on POSIX
  systems. Failures raise `ArchiveError`.
- `trunk.watch` — `is_event_relevant` decides which file system events matter
  (ignored paths and `.git`/`.DS_Store` are skipped); `WatchSystem` starts
  builds on a background thread, postpones them while one is running, holds
  them off for a one-second cooldown after each build, and publishes the
  outcome as a `WsState`, with `build_error_reason` rendering the error chain.
- `trunk.proxies` — `ProxyClientOptions` and `ProxyClients`, which hands out
  one `urllib` opener per option set (redirects, insecure TLS, system proxy
  bypass), and `describe_proxy` for the start-up announcement of a route.
- `trunk.serve` — `StaticServer` resolves request paths under a serve base,
  falls back to `index.html` unless `no_spa` is set, adds configured headers
  and injects the address, websocket base and an optional nonce and
  content security policy into HTML (`inject_html`). `listening_addresses`,
  `open_address` and `is_loopback` work out where a server is reachable;
  `TlsConfig` builds a server TLS context from a certificate and key.

## Examples

Check a version requirement:

```python
from trunk.version import enforce_version_with, parse_requirement, parse_version

enforce_version_with(parse_requirement(">=0.19.0"), parse_version("0.20.0"))
```

A requirement that is not met raises `VersionMismatchError` naming both
versions.

Turn build states into browser messages:

```python
from trunk.ws import WsState, messages_for_states

[m.to_json() for m in messages_for_states([WsState(), WsState.failed("oops"), WsState()])]
# ['{"type":"buildFailure","data":{"reason":"oops"}}', '{"type":"reload"}']
```

Answer a request from the dist directory:

```python
from trunk.serve import StaticServer

server = StaticServer("dist", serve_base="/")
response = server.handle("/", host="localhost:8080")
response.status, response.headers["content-type"]
```

Feed file system events to a watch system:

```python
from trunk.watch import EventKind, WatchSystem

watcher = WatchSystem(build=lambda: None, ignored_paths=["dist"])
watcher.handle_watch_event(EventKind.MODIFY_DATA, ["src/main.css"])
```

## What this package does not do

- It has no command-line program.
- It does not locate external tools on the system or download them; only the
  extraction of an already downloaded archive is provided.
- It does not watch the file system itself: events are passed to
  `WatchSystem.handle_watch_event` by the caller.
- It does not open network sockets for serving or proxying:
  `StaticServer.handle` answers one request given its path and Host header,
  and `ProxyClients` only builds the clients a proxy would use.

## Running the tests

Install the package with its `test` extra and run `pytest` from the project
directory.