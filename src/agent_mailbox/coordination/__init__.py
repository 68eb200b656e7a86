"""File-based coordination between a master agent and its worker processes.

Why not a broker / sockets / SQLite?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Masters and workers are separate OS processes on one machine, and every piece
of state they share has to stay human-inspectable while debugging agent runs:

- Each agent owns a mailbox directory: append-only ``inbox.jsonl`` and
  ``outbox.jsonl`` plus a merge-patched ``status.json``.
- A shared ``registry.json`` lists the agents; a shared ``cursors.json`` remembers
  how much of each outbox the master has already consumed, so a restarted
  master resumes instead of replaying.
- Waiting is cooperative polling with a deadline and a cancellation token, so
  the latency to observe a signal is bounded by the poll interval.

Delivery is at-least-once. The registry and cursor documents are last-write-wins;
with one master writing per mailbox base, contention is rare.
"""
