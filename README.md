# sablier

Start workloads when someone asks for them, and stop them again once nobody
has used them for a while.

A request for one or more instances (containers, swarm services, Kubernetes
deployments or statefulsets) opens a *session*. An instance that is not yet
known is started; one that is known but not ready is checked again. Every
request refreshes the session's expiry. When a session expires, the instance
is stopped. While instances come up, callers either get a waiting page that
refreshes itself, or their request is held until everything is ready.

## Instances

`sablier.instance.State` describes one instance: `name`, `current_replicas`,
`desired_replicas`, `status` (a `Status`: `ready`, `not-ready` or
`unrecoverable`) and an optional `message`. `to_dict` / `from_dict` convert to
and from the JSON form (`currentReplicas`, `desiredReplicas`, ...).

When a provider call fails it raises `sablier.instance.InstanceError`, whose
`state` attribute holds the unrecoverable state that resulted.

## Providers

A provider starts, stops and inspects instances of one platform. All share
the interface of `sablier.provider.Provider`: `start(name)`, `stop(name)`,
`get_state(name)`, `get_groups()` and `watch_stopped(stop)`, a generator that
yields names of instances stopped from outside until the `threading.Event`
`stop` is set.

- `sablier.docker_classic.DockerClassicProvider(client, desired_replicas=1)`
  for plain containers. `client` is any object with `containers(all, filters)`,
  `start(container)`, `stop(container)`, `inspect_container(container)` and
  `events(filters, decode)` returning Docker Engine API JSON.
- `sablier.docker_swarm.DockerSwarmProvider(client, desired_replicas=1)` for
  swarm services in replicated mode. `client` needs `services(filters, status)`,
  `update_service(service_id, version, spec)` and `events(filters, decode)`.
  Names are matched exactly.
- `sablier.kubernetes.KubernetesProvider(client, delimiter="_")` for
  deployments and statefulsets, addressed as `kind_namespace_name_replicas`
  (e.g. `deployment_default_nginx_2`). `client` needs
  `list_workloads(kind, label_selector)`, `read_workload(kind, namespace, name)`,
  `read_scale(...)`, `replace_scale(..., scale)` and `watch_workloads(kind)`.
  `convert_name` and `workload_name` decode and encode instance names.

Every provider also reports *groups*: workloads labelled `sablier.enable=true`
are collected by their `sablier.group` label, or into the group `default`
when that label is missing (`sablier.provider.group_by_label`).

## Sessions

`sablier.sessions.SessionsManager(store, provider, refresh_frequency=2.0)`
keeps sessions in a `sablier.store.ExpiringStore`. It refreshes the provider's
groups every `refresh_frequency` seconds and removes entries from the store
when the provider reports that an instance was stopped.

- `request_session(names, duration)` / `request_session_group(group, duration)`
  start or check the instances and return a `SessionState` at once (or `None`
  when nothing is named or the group is unknown).
- `request_ready_session(names, duration, timeout, cancel=None)` /
  `request_ready_session_group(...)` poll every 5 seconds until every instance
  is ready, raising `SessionNotReadyError` when the timeout runs out and
  `RequestCancelledError` when the `cancel` event is set.
- `load_sessions(reader)` / `save_sessions(writer)` read and write the store as
  JSON: `{name: {"value": <state>, "expires_at": <epoch seconds>}}`.
- `stop()` stops the watchers and the store.

All durations are in seconds. `ExpiringStore(interval, on_expire)` sweeps
expired entries every `interval` seconds and calls `on_expire(key, value)` for
each one.

`sablier.storage.FileStorage(path)` gives a reader and a writer for a session
file, creating it as `{}` if it is missing or empty. Without a path it is
disabled and `reader`/`writer` raise `StorageDisabledError`.

## HTTP interface

`sablier.server.create_app(sessions_manager, themes, config=None, base_path="/")`
builds a Flask application and `sablier.server.serve(app, port)` runs it until
SIGINT or SIGTERM, then shuts down gracefully. Under the base path it offers:

| Route                                | Purpose                                             |
|--------------------------------------|-----------------------------------------------------|
| `GET /api/strategies/dynamic`        | Waiting page, rendered with a theme                 |
| `GET /api/strategies/dynamic/themes` | JSON list of the loaded themes                      |
| `GET /api/strategies/blocking`       | Waits until ready, then answers with the session JSON |
| `GET /health`                        | `OK`, or `Service Unavailable` once shutting down   |

Parameters are read from a JSON body when the request has one, otherwise from
the query string:

- `names` (repeatable) or `group` – what to start
- `session_duration` – e.g. `5m`, `1h30m`, `500ms`, or a number of seconds
- `display_name`, `theme`, `show_details`, `refresh_frequency` – dynamic strategy
- `timeout` – blocking strategy

Both strategies set the header `X-Sablier-Session-Status` to `ready` or
`not-ready`. Malformed parameters give 400, an unknown session 404, a missing
theme or a blocking request that times out 500.

Defaults come from `sablier.routes.StrategyConfig`: theme `hacker-terminal`,
details shown, refresh every 5 s, timeout 60 s, session duration 300 s.

Every request is logged through the `sablier.access` logger
(`sablier.middleware.install_access_log`). `sablier.healthcheck.health(url)`
fetches a health URL and returns the body and whether the status was below 400.

## Themes

`sablier.theme.Themes(templates)` holds Jinja2 templates keyed by file name;
`Themes.from_directory(path)` loads every `.html` file below a directory, so
`inner/my-theme.html` becomes the theme `my-theme`. `list()` returns the theme
names and `render(name, options, version="")` renders one with a
`sablier.theme.Options`. Templates receive `display_name`, `instance_states`
(each with `name`, `status`, `error`, `current_replicas`, `desired_replicas`;
empty unless details are shown), `session_duration` in words,
`refresh_frequency` in whole seconds and `version`.

## Putting it together

```python
from sablier.app import start
from sablier.routes import StrategyConfig

start(
    provider,                 # one of the providers above
    StrategyConfig(),
    port=10000,
    base_path="/",
    storage_file="/var/lib/sablier/sessions.json",
    themes_path="/etc/sablier/themes",
    expiration_interval=20,
    log_level="info",
)
```

`start` sets the log level, creates the expiring store, loads saved sessions,
loads the themes, serves HTTP until interrupted and saves the sessions on the
way out. When a session expires, `sablier.app.on_session_expires` stops the
instance through the provider in a background thread.

## What this package does not do

- It ships no themes. Without `themes_path` no theme is loaded, so the dynamic
  strategy answers 500 until templates such as `hacker-terminal.html` are
  provided.
- It does not connect to Docker or Kubernetes itself: you pass each provider a
  client object with the methods listed above.
- It has no command-line program and reads no configuration file; call
  `sablier.app.start` (or `create_app` and `serve`) from your own code.