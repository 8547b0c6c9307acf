# taskmaster

A small process supervisor for POSIX systems. `taskmasterd` reads a TOML
file that describes programs, starts them, watches them, starts them again
when they exit, and listens on a Unix socket for commands. `taskmasterctl`
is an interactive shell that sends those commands to the daemon.

## Installation

```
pip install .
```

Python 3.11 or later is required. There are no third-party dependencies.

## Setup file

Both commands read `setup.toml` from the current directory, or the file
given with `--setup PATH`:

```toml
prompt = "taskmaster> "           # default: empty
socket = "/tmp/taskmaster.sock"   # default
config = "taskmaster.toml"        # default
```

## Program configuration

The file named by `config` lists programs under `[program.<name>]` tables.
The name `all` is reserved; the daemon refuses to start if a program uses it.

```toml
user = ""            # optional: switch to this user's uid at start-up and on reload

[program.web]
command = "python3 -m http.server 8000"
directory = "/srv/www"
environment = ["MODE=production"]
stdout_logfile = "/tmp/web.out"
stderr_logfile = "/tmp/web.err"
autostart = true
autorestart = "unexpected"
exitcodes = [0]
startsecs = 1
startretries = 3
stopsignal = "TERM"
stopwaitsecs = 10
umask = "0022"
```

| key            | default       | notes                                                          |
|----------------|---------------|----------------------------------------------------------------|
| command        | required      | run as `sh -c "umask <umask> && <command>"` in its own process group |
| autostart      | `true`        | start when the daemon starts                                   |
| numprocs       | `1`           | must be at least 1                                             |
| environment    | empty         | `KEY=VALUE` strings; variables inherited from the daemon take precedence |
| directory      | daemon's own  | working directory                                              |
| stdout_logfile | daemon stdout | appended to, created if missing                                |
| stderr_logfile | daemon stderr | appended to, created if missing                                |
| umask          | `0022`        |                                                                |
| startsecs      | `1`           | a process that exits sooner counts as a failed start           |
| startretries   | `3`           | failed starts in a row before the program is marked `FATAL`    |
| autorestart    | `unexpected`  | one of `false`, `unexpected`, `true`                           |
| stopsignal     | `TERM`        | `TERM`, `HUP`, `INT`, `QUIT`, `KILL`, `USR1`, `USR2`           |
| stopwaitsecs   | `10`          | how long `stop` waits for the program to go away               |
| exitcodes      | `[0]`         | list of integers                                               |

Values of the wrong type, numbers below their minimum, and values outside
the listed choices are rejected with `taskmaster.config.ValidationError`.

### How programs are run

- A program whose process lives at least `startsecs` and then exits is
  `EXITED`. With `autorestart = "false"` it stays that way; with `"true"`
  or `"unexpected"` it is started again.
- Stopping a program sends `SIGKILL` to its process group, waits up to
  `stopwaitsecs` for it to finish, and sends `stopsignal` to the group if it
  is still being supervised after that.
- States are `STOPPED`, `STARTING`, `RUNNING`, `BACKOFF`, `STOPPING`,
  `EXITED` and `FATAL`.

## Running

Start the daemon:

```
taskmasterd
```

It stops every program and exits on `SIGINT`, `SIGTERM` or `SIGQUIT`, and
reloads its configuration on `SIGHUP`.

Connect with the control shell:

```
taskmasterctl
```

Commands:

- `status <name|all>`: one line per program, `[name]: STATE`
- `start <name|all>`
- `stop <name|all>`
- `restart <name|all>`
- `reload`: re-read the configuration; programs that were removed are
  stopped, new ones are started, and running programs whose `command`,
  `directory`, `environment` or `umask` changed are restarted; other
  settings, including log files, take effect in place
- `quit`: stop every program and shut the daemon down
- `exit`: leave the shell, leaving the daemon running

`status`, `start`, `stop` and `restart` take exactly one argument;
`reload`, `quit` and `exit` take none. Words are separated by single
spaces. The shell ends on end of input (Ctrl-D).

On the socket, each request and each reply is terminated by a carriage
return (`\r`).

## Using the library

```python
from taskmaster.config import parse_config
from taskmaster.interpreter import parse

config = parse_config("taskmaster.toml")
for name, program in config.programs.items():
    print(name, program.command)

print(parse("status all"))   # ['status', 'all']
```

`taskmaster.config.load_config` builds the same `Config` from an
already-decoded dictionary, and `taskmaster.interpreter.parse` raises
`SyntaxProblem` for unknown commands.

## What it does not do

- `numprocs` is validated but only one process is run per program.
- `exitcodes` is stored but not consulted: `autorestart = "unexpected"`
  restarts a program whatever its exit code, just as `"true"` does.
- Log files are only appended to; there is no rotation.

## Tests

```
pip install ".[test]"
pytest
```