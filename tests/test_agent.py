"""Tests for craftmatch.services.agent — exploration, batched learning and bounded updates."""

import random
import threading

import pytest

from craftmatch.core.environment import AgentConfig, create_default_environment, default_state
from craftmatch.core.errors import IncompleteStateError
from craftmatch.core.models import Action, ActionType, AgentType, State
from craftmatch.services.agent import (
    BasePolicyAgent,
    BoundedHeuristicAdjustment,
    initial_policy,
)

from factories import make_experience


class _FixedAgent(BasePolicyAgent):
    """Exploits with a fixed action when the state names a seeker."""

    def select_action(self, state: State) -> Action:
        if state.seeker_id is None:
            raise IncompleteStateError("no seeker")
        return Action(action_type=ActionType.RECOMMEND_EXPERIENCE, confidence=0.9)


def _agent(gateway=None, **config) -> _FixedAgent:
    return _FixedAgent(
        AgentType.SEEKER_MATCHING,
        gateway=gateway,
        config=AgentConfig(**config),
        rng=random.Random(42),
    )


def _state() -> State:
    state = default_state()
    state.seeker_id = "S1"
    return state


class TestActing:
    def test_exploration_rate_respected(self):
        agent = _agent(exploration_rate=0.1)
        state = _state()
        explored = sum(agent.act(state).exploratory for _ in range(10_000))
        assert 850 <= explored <= 1150

    def test_never_explores_at_zero(self):
        agent = _agent(exploration_rate=0.0)
        actions = [agent.act(_state()) for _ in range(200)]
        assert not any(a.exploratory for a in actions)
        assert all(a.confidence == 0.9 for a in actions)

    def test_exploratory_action_shape(self):
        agent = _agent(exploration_rate=1.0)
        action = agent.act(_state())
        assert action.exploratory
        assert action.confidence == 0.1
        assert action.cultural_impact == 0.0
        assert action.economic_impact == 0.0
        assert action.action_type == ActionType.RECOMMEND_EXPERIENCE

    def test_incomplete_state_falls_back_to_exploring(self):
        agent = _agent(exploration_rate=0.0)
        action = agent.act(State())
        assert action.exploratory

    def test_explore_does_not_share_catalogue_parameters(self):
        agent = _agent(exploration_rate=1.0)
        action = agent.act(_state())
        action.parameters["mutated"] = True
        assert all("mutated" not in a.parameters for a in agent.environment.available_actions)


class TestConfig:
    def test_rejects_bad_exploration_rate(self):
        with pytest.raises(ValueError):
            AgentConfig(exploration_rate=1.5)

    def test_rejects_empty_batch(self):
        with pytest.raises(ValueError):
            AgentConfig(batch_size=0)


class TestLearning:
    def test_empty_learn_is_noop(self):
        agent = _agent()
        before = agent.policy_snapshot()
        agent.learn([])
        after = agent.policy_snapshot()
        assert after.version == before.version
        assert after.weights == before.weights
        assert agent.experience_count == 0

    def test_no_update_below_batch(self):
        agent = _agent(batch_size=4)
        agent.learn([make_experience() for _ in range(3)])
        assert agent.policy_version == 1
        assert agent.experience_count == 3

    def test_version_bumps_once_per_update(self):
        agent = _agent(batch_size=4)
        agent.learn([make_experience() for _ in range(3)])
        agent.learn([make_experience()])
        assert agent.policy_version == 2
        agent.learn([make_experience()])
        assert agent.policy_version == 3

    def test_buffer_truncated(self):
        agent = _agent(batch_size=2)
        experiences = [make_experience() for _ in range(21)]
        agent.learn(experiences)
        assert agent.experience_count == 10
        assert agent.buffer[-1] is experiences[-1]

    def test_not_learning_after_update(self):
        agent = _agent(batch_size=1)
        agent.learn([make_experience()])
        assert not agent.is_learning

    def test_weights_stay_within_bound(self):
        agent = _agent(batch_size=4)
        before = agent.policy_snapshot().weights
        agent.learn([make_experience() for _ in range(4)])
        after = agent.policy_snapshot().weights
        for name, value in after.items():
            assert value >= 0.0
            assert before[name] * 0.9 - 1e-12 <= value <= before[name] * 1.1 + 1e-12

    def test_performance_metrics(self):
        agent = _agent(batch_size=2)
        low = make_experience(score=0.2, satisfaction=0.4, expert_approval=False)
        high = make_experience(score=1.0, satisfaction=1.0, expert_approval=True)
        agent.learn([low, high])
        perf = agent.policy_snapshot().performance
        assert perf.average_reward == pytest.approx((low.reward + high.reward) / 2)
        assert perf.cultural_score == pytest.approx(0.6)
        assert perf.satisfaction_score == pytest.approx(0.7)
        assert perf.validation_score == pytest.approx(0.5)

    def test_experience_reward_uses_current_weights(self):
        agent = _agent()
        exp = make_experience()
        built = agent.build_experience(
            exp.state, exp.action, exp.next_state,
            exp.cultural_validation, exp.economic_outcome,
        )
        assert built.reward == pytest.approx(exp.reward)
        assert built.agent_type == AgentType.SEEKER_MATCHING

    def test_update_persisted(self, memory_gateway):
        agent = _agent(gateway=memory_gateway, batch_size=2)
        agent.learn([make_experience(), make_experience()])

        latest = memory_gateway.get_latest_policy(AgentType.SEEKER_MATCHING)
        assert latest.success
        assert latest.data.version == 2

        perf = memory_gateway.get_agent_performance(AgentType.SEEKER_MATCHING)
        assert perf.data.policy_version == 2
        assert perf.data.experience_count == 2

    def test_restore_policy(self):
        agent = _agent()
        policy = initial_policy(AgentConfig())
        policy.version = 7
        agent.restore_policy(policy)
        policy.version = 8
        assert agent.policy_version == 7


class TestConcurrency:
    def test_concurrent_learn_and_act_stay_consistent(self):
        agent = _agent(batch_size=2, exploration_rate=0.5)
        experiences = [make_experience() for _ in range(100)]
        start = threading.Barrier(6)
        errors = []

        def learner(chunk):
            start.wait()
            try:
                for exp in chunk:
                    agent.learn([exp])
            except Exception as e:
                errors.append(e)

        def actor():
            start.wait()
            try:
                for _ in range(200):
                    agent.act(_state())
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=learner, args=(experiences[i::4],)) for i in range(4)
        ] + [threading.Thread(target=actor) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []
        # Every single-experience learn after the first completes a batch
        assert agent.policy_version == 100
        # 21 -> 10 truncation cycles leave 12 after 100 appends
        assert agent.experience_count == 12
        buffered = agent.buffer
        assert len({e.experience_id for e in buffered}) == len(buffered)
        assert {e.experience_id for e in buffered} <= {e.experience_id for e in experiences}
        assert agent.performance_snapshot().policy_version == 100
        assert not agent.is_learning


class TestBoundedHeuristicAdjustment:
    def test_weights_follow_success(self):
        policy = initial_policy(AgentConfig())
        batch = [make_experience(score=0.9, satisfaction=0.5, revenue=0.9) for _ in range(4)]
        BoundedHeuristicAdjustment().apply(policy, batch)
        assert policy.weights["cultural"] == pytest.approx(0.44)
        assert policy.weights["economic"] == pytest.approx(0.33)
        assert policy.weights["satisfaction"] == pytest.approx(0.27)

    def test_scoring_weights_untouched(self):
        policy = initial_policy(AgentConfig())
        BoundedHeuristicAdjustment().apply(policy, [make_experience()])
        assert policy.weights["craft"] == 0.3

    def test_low_cultural_mean_raises_threshold(self):
        policy = initial_policy(AgentConfig())
        BoundedHeuristicAdjustment().apply(policy, [make_experience(score=0.5)])
        assert policy.thresholds["min_cultural_score"] == pytest.approx(0.75)

    def test_thresholds_capped(self):
        policy = initial_policy(AgentConfig())
        strategy = BoundedHeuristicAdjustment()
        batch = [make_experience(score=0.1, sustainability=0.1)]
        for _ in range(20):
            strategy.apply(policy, batch)
        assert policy.thresholds["min_cultural_score"] == pytest.approx(0.9)
        assert policy.thresholds["min_economic_score"] == pytest.approx(0.8)

    def test_expert_rejections_lower_alignment(self):
        policy = initial_policy(AgentConfig())
        strategy = BoundedHeuristicAdjustment()
        rejected = [make_experience(expert_approval=False)]
        strategy.apply(policy, rejected)
        assert policy.cultural_alignment == pytest.approx(0.95)
        for _ in range(20):
            strategy.apply(policy, rejected)
        assert policy.cultural_alignment == pytest.approx(0.5)

    def test_approvals_recover_alignment(self):
        policy = initial_policy(AgentConfig())
        policy.cultural_alignment = 0.8
        BoundedHeuristicAdjustment().apply(policy, [make_experience(expert_approval=True)])
        assert policy.cultural_alignment == pytest.approx(0.82)

    def test_weights_never_negative(self):
        policy = initial_policy(AgentConfig())
        strategy = BoundedHeuristicAdjustment(max_adjustment=2.0)
        strategy.apply(policy, [make_experience(score=0.1, satisfaction=0.1, revenue=0.0)])
        assert all(v >= 0.0 for v in policy.weights.values())

    def test_empty_batch(self):
        policy = initial_policy(AgentConfig())
        before = policy.snapshot()
        BoundedHeuristicAdjustment().apply(policy, [])
        assert policy.weights == before.weights
        assert policy.thresholds == before.thresholds


class TestEnvironment:
    @pytest.mark.parametrize("agent_type", list(AgentType))
    def test_every_agent_type_can_explore(self, agent_type):
        env = create_default_environment(agent_type)
        assert env.available_actions
        assert env.environment_type

    def test_environment_recorded_with_performance(self):
        agent = _agent()
        assert agent.performance_snapshot().config["environment"] == "cultural-tourism"

    def test_seeker_matching_catalogue(self):
        env = create_default_environment(AgentType.SEEKER_MATCHING)
        assert env.environment_type == "cultural-tourism"
        assert {a.action_type for a in env.available_actions} == {ActionType.RECOMMEND_EXPERIENCE}
