"""Stand-in for ffmpeg used by the test-suite.

Understands the subset of arguments the processor passes: ``-progress``,
``-i`` and the trailing output path. Behaviour is picked from the input
file name: ``fail`` exits non-zero, ``slow`` runs until signalled,
``bigger`` writes a result larger than its source.
"""
import os
import signal
import socket
import sys
import time


def _arg_after(argv, flag):
    index = argv.index(flag)
    return argv[index + 1]


def _connect(address):
    path = address[len("unix://"):] if address.startswith("unix://") else address
    client = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    client.connect(path)
    return client


def main(argv):
    source = _arg_after(argv, "-i")
    output = argv[-1]
    name = os.path.basename(source)

    if "fail" in name:
        sys.stderr.write("boom: encoder could not open codec\n")
        return 1

    client = _connect(_arg_after(argv, "-progress"))

    if "slow" in name:
        signal.signal(signal.SIGTERM, lambda *_: sys.exit(255))
        client.sendall(b"out_time_ms=1000000\nprogress=continue\n")
        while True:
            time.sleep(0.05)

    for elapsed in (30_000_000, 60_000_000, 90_000_000):
        client.sendall(f"frame=1\nout_time_ms={elapsed}\nprogress=continue\n".encode())
        time.sleep(0.02)
    client.sendall(b"out_time_ms=120000000\nprogress=end\n")
    client.close()

    with open(source, "rb") as handle:
        original = handle.read()
    with open(output, "wb") as handle:
        if "bigger" in name:
            handle.write(original * 2 + b"!")
        else:
            handle.write(b"transcoded:" + name.encode())
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
