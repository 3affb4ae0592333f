import unittest

from raftsim.models import NO_TERM, AppendEntries, AppendResponse, LogEntry

from support import make_cluster, make_leader


def entry(index, term=1, command="noop"):
    return LogEntry(term=term, index=index, command=command)


class TestLeaderSide(unittest.TestCase):
    def setUp(self):
        self.cluster = make_cluster(5)
        self.leader = make_leader(self.cluster, 0, term=1)

    def test_heartbeat_interval(self):
        rep = self.cluster.replication
        rep.tick(self.leader, 499.0)
        self.assertEqual(self.cluster.transport.messages, [])
        rep.tick(self.leader, 1.0)
        self.assertEqual(self.leader.heartbeatTimer, 0.0)
        beats = self.cluster.transport.in_flight("append_entries")
        self.assertEqual(len(beats), 4)
        for m in beats:
            self.assertEqual(m.entries, [])
            self.assertEqual(m.prevLogIndex, -1)
            self.assertEqual(m.prevLogTerm, NO_TERM)
            self.assertEqual(m.leaderCommit, -1)
            self.assertEqual(m.term, 1)

    def test_entries_sliced_from_next_index(self):
        for i in range(3):
            self.leader.log.append(entry(i))
        self.leader.nextIndex[1] = 1
        self.leader.nextIndex[2] = 3
        self.cluster.replication.send_append_entries(self.leader)
        msgs = {m.receiver: m for m in self.cluster.transport.messages}
        self.assertEqual([e.index for e in msgs[1].entries], [1, 2])
        self.assertEqual(msgs[1].prevLogIndex, 0)
        self.assertEqual(msgs[1].prevLogTerm, 1)
        self.assertEqual(msgs[2].entries, [])
        self.assertEqual(msgs[2].prevLogIndex, 2)

    def test_skips_stopped_peers(self):
        self.cluster.stop_node(2)
        self.cluster.replication.send_append_entries(self.leader)
        receivers = sorted(m.receiver for m in self.cluster.transport.messages)
        self.assertEqual(receivers, [1, 3, 4])

    def test_add_log_entry_replicates_immediately(self):
        added = self.cluster.add_log_entry("SET x 1")
        self.assertEqual(added.index, 0)
        self.assertEqual(added.term, 1)
        self.assertFalse(added.committed)
        self.assertEqual(len(self.leader.log), 1)
        msgs = self.cluster.transport.in_flight("append_entries")
        self.assertEqual(len(msgs), 4)
        self.assertTrue(all(m.entries[0].command == "SET x 1" for m in msgs))

    def test_add_log_entry_without_leader(self):
        cluster = make_cluster(5)
        with self.assertLogs("REPLICATION", level="WARNING"):
            self.assertIsNone(cluster.add_log_entry("SET x 1"))
        self.assertTrue(all(len(n.log) == 0 for n in cluster.nodes))

    def respond(self, sender, success=True, match=0, term=1):
        self.cluster.deliver(
            self.leader,
            AppendResponse(sender=sender, receiver=0, term=term, success=success, matchIndex=match),
        )

    def test_commit_needs_quorum(self):
        self.cluster.add_log_entry("SET x 1")
        self.respond(1)
        self.assertEqual(self.leader.matchIndex[1], 0)
        self.assertEqual(self.leader.nextIndex[1], 1)
        self.assertEqual(self.leader.commitIndex, -1)
        self.respond(2)
        self.assertEqual(self.leader.commitIndex, 0)
        self.assertTrue(self.leader.log[0].committed)
        self.assertEqual(self.leader.lastApplied, 0)
        self.assertEqual(self.leader.stateMachine, {"x": "1"})

    def test_stale_ack_does_not_count(self):
        self.cluster.add_log_entry("SET x 1")
        # acknowledgement of an earlier heartbeat
        self.respond(1, match=-1)
        self.respond(2, match=-1)
        self.assertEqual(self.leader.commitIndex, -1)
        self.assertEqual(self.leader.matchIndex[1], -1)

    def test_ack_from_stopped_peer_excluded(self):
        self.cluster.add_log_entry("SET x 1")
        self.respond(1)
        self.cluster.stop_node(1)
        self.respond(2)
        self.assertEqual(self.leader.commitIndex, -1)
        self.respond(3)
        self.assertEqual(self.leader.commitIndex, 0)

    def test_only_current_term_entries_commit_directly(self):
        self.leader.log.append(entry(0, term=1))
        self.leader.currentTerm = 2
        self.respond(1, match=0, term=2)
        self.respond(2, match=0, term=2)
        self.assertEqual(self.leader.commitIndex, -1)

        self.cluster.add_log_entry("SET y 2")
        self.respond(1, match=1, term=2)
        self.respond(2, match=1, term=2)
        self.assertEqual(self.leader.commitIndex, 1)
        self.assertTrue(all(e.committed for e in self.leader.log))

    def test_failure_backs_off_next_index(self):
        for i in range(4):
            self.leader.log.append(entry(i))
        self.leader.nextIndex[1] = 4
        self.respond(1, success=False, match=3)
        self.assertEqual(self.leader.nextIndex[1], 3)
        self.respond(1, success=False, match=0)
        self.assertEqual(self.leader.nextIndex[1], 1)
        self.respond(1, success=False, match=-1)
        self.assertEqual(self.leader.nextIndex[1], 0)
        self.respond(1, success=False, match=-1)
        self.assertEqual(self.leader.nextIndex[1], 0)

    def test_response_for_other_term_ignored(self):
        self.cluster.add_log_entry("SET x 1")
        self.leader.currentTerm = 3
        self.respond(1, term=2)
        self.assertEqual(self.leader.matchIndex[1], -1)

    def test_higher_term_response_deposes_leader(self):
        self.respond(1, success=False, match=-1, term=4)
        self.assertEqual(self.leader.role, "follower")
        self.assertEqual(self.leader.currentTerm, 4)
        self.assertIsNone(self.cluster.state.leaderId)


class TestFollowerSide(unittest.TestCase):
    def setUp(self):
        self.cluster = make_cluster(5)
        self.follower = self.cluster.nodes[1]

    def append(self, entries=(), term=1, prev=-1, commit=-1):
        self.cluster.deliver(
            self.follower,
            AppendEntries(
                sender=0,
                receiver=1,
                term=term,
                entries=list(entries),
                prevLogIndex=prev,
                prevLogTerm=NO_TERM if prev < 0 else term,
                leaderCommit=commit,
            ),
        )
        return self.cluster.transport.messages[-1]

    def test_heartbeat_resets_timer(self):
        self.follower.electionTimer = 1200.0
        reply = self.append()
        self.assertEqual(self.follower.electionTimer, 0.0)
        self.assertTrue(reply.success)
        self.assertEqual(reply.term, 1)
        self.assertEqual(self.follower.currentTerm, 1)

    def test_stale_leader_rejected(self):
        self.follower.currentTerm = 3
        self.cluster.transition(self.follower, "candidate")
        self.follower.electionTimer = 1200.0
        reply = self.append(term=2)
        self.assertFalse(reply.success)
        self.assertEqual(reply.term, 3)
        self.assertEqual(self.follower.role, "candidate")
        self.assertEqual(self.follower.electionTimer, 0.0)

    def test_candidate_steps_down_for_same_term_leader(self):
        self.follower.currentTerm = 1
        self.follower.votedFor = 1
        self.cluster.transition(self.follower, "candidate")
        reply = self.append(term=1)
        self.assertTrue(reply.success)
        self.assertEqual(self.follower.role, "follower")
        self.assertEqual(self.follower.currentTerm, 1)

    def test_appends_and_commits(self):
        reply = self.append([entry(0, command="SET a 1"), entry(1, command="SET b 2")])
        self.assertEqual(len(self.follower.log), 2)
        self.assertEqual(reply.matchIndex, 1)
        self.assertEqual(self.follower.commitIndex, -1)
        self.assertFalse(any(e.committed for e in self.follower.log))

        self.append(prev=1, commit=0)
        self.assertEqual(self.follower.commitIndex, 0)
        self.assertEqual([e.committed for e in self.follower.log], [True, False])
        self.assertEqual(self.follower.stateMachine, {"a": "1"})

        # leaderCommit beyond the local log is capped
        self.append(prev=1, commit=7)
        self.assertEqual(self.follower.commitIndex, 1)
        self.assertEqual(self.follower.lastApplied, 1)
        self.assertEqual(self.follower.stateMachine, {"a": "1", "b": "2"})

    def test_existing_entries_are_kept(self):
        self.append([entry(0, command="first")])
        self.append([entry(0, term=2, command="other"), entry(1, term=2)], term=2)
        self.assertEqual(self.follower.log[0].command, "first")
        self.assertEqual(self.follower.log[0].term, 1)
        self.assertEqual(self.follower.log[1].term, 2)

    def test_gap_is_refused(self):
        reply = self.append([entry(3)], prev=2)
        self.assertFalse(reply.success)
        self.assertEqual(reply.matchIndex, -1)
        self.assertEqual(self.follower.log, [])

    def test_commit_never_decreases(self):
        self.append([entry(0), entry(1)], commit=1)
        self.assertEqual(self.follower.commitIndex, 1)
        self.append(prev=1, commit=0)
        self.assertEqual(self.follower.commitIndex, 1)

    def test_entries_are_copied(self):
        e = entry(0)
        self.append([e])
        self.follower.log[0].committed = True
        self.assertFalse(e.committed)
