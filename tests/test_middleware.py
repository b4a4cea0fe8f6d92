from osbroker.middleware import use
from osbroker.web import Request, Response


def _recording_endpoint(calls):
    def endpoint(request):
        calls.append("endpoint")
        return Response(status=200)

    return endpoint


def test_empty_list_calls_endpoint():
    calls = []
    endpoint = _recording_endpoint(calls)
    handler = use(endpoint)
    assert handler is endpoint
    response = handler(Request())
    assert calls == ["endpoint"]
    assert response.status == 200


def test_middleware_called_in_order():
    order = []

    def make(name):
        def middleware(next_handler):
            def handler(request):
                order.append(name)
                return next_handler(request)

            return handler

        return middleware

    use(_recording_endpoint(order), make("first"), make("second"), make("third"))(Request())
    assert order == ["first", "second", "third", "endpoint"]


def test_rejecting_middleware_skips_endpoint():
    calls = []

    def rejector(next_handler):
        return lambda request: Response(status=418, body=b"I'm a teapot")

    response = use(_recording_endpoint(calls), rejector)(Request())
    assert calls == []
    assert response.status == 418


def test_none_middlewares_are_skipped():
    order = []

    def tagger(next_handler):
        def handler(request):
            order.append("tag")
            return next_handler(request)

        return handler

    use(_recording_endpoint(order), None, tagger, None)(Request())
    assert order == ["tag", "endpoint"]