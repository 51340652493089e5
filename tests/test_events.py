from interviewer.interview.events import (
    AnswerSubmittedEvent, ErrorOccurredEvent, EventType, InterviewEventBus, InterviewMetrics,
    InterviewResetEvent, QuestionReadyEvent,
)


def test_specific_and_global_handlers_receive_events():
    bus = InterviewEventBus()
    specific, everything = [], []
    bus.subscribe(EventType.QUESTION_READY, specific.append)
    bus.subscribe_all(everything.append)

    bus.emit(QuestionReadyEvent("s1", 0.0, 1, "What is REST?", False))
    bus.emit(AnswerSubmittedEvent("s1", 0.0, 1, "Stateless"))

    assert [e.event_type for e in specific] == [EventType.QUESTION_READY]
    assert [e.event_type for e in everything] == [EventType.QUESTION_READY, EventType.ANSWER_SUBMITTED]
    assert specific[0].data["question"] == "What is REST?"


def test_failing_handler_does_not_stop_delivery():
    bus = InterviewEventBus()
    received = []

    def broken(event):
        raise RuntimeError("handler bug")

    bus.subscribe(EventType.INTERVIEW_RESET, broken)
    bus.subscribe(EventType.INTERVIEW_RESET, received.append)

    bus.emit(InterviewResetEvent("s1", 0.0, 2))

    assert len(received) == 1


def test_handler_may_unsubscribe_itself_during_emit():
    bus = InterviewEventBus()
    calls = []

    def once(event):
        calls.append(event)
        bus.unsubscribe(EventType.INTERVIEW_RESET, once)

    bus.subscribe(EventType.INTERVIEW_RESET, once)
    bus.emit(InterviewResetEvent(None, 0.0, 1))
    bus.emit(InterviewResetEvent(None, 0.0, 2))

    assert len(calls) == 1


def test_metrics_count_fallbacks_and_errors():
    metrics = InterviewMetrics()
    bus = InterviewEventBus()
    bus.subscribe_all(metrics.handle_event)

    bus.emit(QuestionReadyEvent("s1", 0.0, 1, "Q", is_fallback=True))
    bus.emit(ErrorOccurredEvent("s1", 0.0, "LLMRequestError", "timeout", "session"))

    snapshot = metrics.get_metrics()
    assert snapshot["questions_asked"] == 1
    assert snapshot["fallback_responses"] == 1
    assert snapshot["errors_occurred"] == 1

    metrics.reset()
    assert set(metrics.get_metrics().values()) == {0}
