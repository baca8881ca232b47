"""
Tests for the JSON API.
"""

import expression_adapter as cas


def same(actual, expected):
    return cas.simplify(cas.parse(actual) - cas.parse(expected)) == 0


def register_and_login(client, username='ada', password='secret123'):
    client.post('/api/register', json={'username': username, 'password': password})
    return client.post('/api/login', json={'username': username, 'password': password})


class TestIndex:

    def test_index_lists_endpoints(self, client):
        response = client.get('/')
        assert response.status_code == 200
        data = response.get_json()
        assert data['ok'] is True
        assert 'POST /api/derivative' in data['endpoints']
        assert data['user'] is None


class TestDerivativeEndpoint:

    def test_derivative(self, client):
        response = client.post('/api/derivative', json={'expression': 'x^3 + 2*x^2 + x'})
        assert response.status_code == 200
        data = response.get_json()
        assert data['ok'] is True
        assert same(data['result'], '3*x^2 + 4*x + 1')
        assert data['steps'][-1]['final'] is True
        assert 'sum rule' in data['rules']

    def test_higher_order(self, client):
        response = client.post('/api/derivative', json={'expression': 'x^4', 'order': 2})
        assert same(response.get_json()['result'], '12*x^2')

    def test_implicit(self, client):
        response = client.post('/api/derivative', json={'expression': 'x^2 + y^2 = 25', 'implicit': True})
        data = response.get_json()
        assert data['implicit'] is True
        assert same(data['result'], '-x/y')

    def test_empty_expression(self, client):
        response = client.post('/api/derivative', json={'expression': ''})
        assert response.status_code == 400
        assert response.get_json()['ok'] is False

    def test_invalid_order(self, client):
        response = client.post('/api/derivative', json={'expression': 'x^2', 'order': 0})
        assert response.status_code == 400

    def test_invalid_variable(self, client):
        response = client.post('/api/derivative', json={'expression': 'x^2', 'variable': 'x+1'})
        assert response.status_code == 400

    def test_unparseable_expression(self, client):
        response = client.post('/api/derivative', json={'expression': '2*(x'})
        assert response.status_code == 400
        data = response.get_json()
        assert data['ok'] is False
        assert data['error']
        assert data['steps'][-1]['error'] is True

    def test_euler_constant_is_not_a_variable(self, client):
        response = client.post('/api/derivative', json={'expression': 'e^2', 'variable': 'e'})
        assert response.status_code == 400
        assert "Euler" in response.get_json()['error']

    def test_implicit_rejects_dependent_variable(self, client):
        response = client.post('/api/derivative', json={'expression': 'x^2 + y^2 = 25', 'implicit': True,
                                                        'variable': 'y'})
        assert response.status_code == 400
        assert response.get_json()['ok'] is False

    def test_implicit_rejects_higher_order(self, client):
        response = client.post('/api/derivative', json={'expression': 'x^2 + y^2 = 25', 'implicit': True,
                                                        'order': 2})
        assert response.status_code == 400
        assert 'first derivative' in response.get_json()['error']

    def test_glued_symbols(self, client):
        response = client.post('/api/derivative', json={'expression': '2xy'})
        assert response.status_code == 200
        assert same(response.get_json()['result'], '2*y')


class TestLimitEndpoint:

    def test_limit(self, client):
        response = client.post('/api/limit', json={'expression': '(x^2 - 4)/(x - 2)', 'point': 2})
        data = response.get_json()
        assert response.status_code == 200
        assert data['result'] == 4.0
        assert data['indetermination'] == '0/0'
        assert data['factorizationMethod'] == 'difference of squares'

    def test_limit_at_infinity(self, client):
        response = client.post('/api/limit', json={'expression': 'x^2', 'point': 'infinity'})
        data = response.get_json()
        assert data['result'] == 'infinity'
        assert data['point'] == 'infinity'

    def test_limit_that_does_not_exist(self, client):
        response = client.post('/api/limit', json={'expression': '1/x', 'point': 0})
        assert response.status_code == 200
        data = response.get_json()
        assert data['ok'] is True
        assert data['result'] is None

    def test_limit_from_the_defined_side(self, client):
        response = client.post('/api/limit', json={'expression': 'x*ln(x)', 'point': 0})
        assert response.status_code == 200
        data = response.get_json()
        assert data['ok'] is True
        assert data['indetermination'] == 'one-sided'
        assert data['factorizationMethod'] == 'limit from the defined side'

    def test_invalid_point(self, client):
        response = client.post('/api/limit', json={'expression': 'x', 'point': 'nowhere'})
        assert response.status_code == 400
        assert response.get_json()['ok'] is False


class TestExerciseEndpoint:

    def test_derivative_exercise(self, client):
        response = client.get('/api/exercise/derivative?category=chain')
        data = response.get_json()
        assert data['ok'] is True
        assert data['exercise']['category'] == 'chain'

    def test_limit_exercise(self, client):
        data = client.get('/api/exercise/limit').get_json()
        assert 'point' in data['exercise']

    def test_unknown_category(self, client):
        response = client.get('/api/exercise/limit?category=series')
        assert response.status_code == 400

    def test_unknown_kind(self, client):
        response = client.get('/api/exercise/integral')
        assert response.status_code == 404


class TestLatexEndpoint:

    def test_latex(self, client):
        data = client.post('/api/latex', json={'expression': 'x^2'}).get_json()
        assert data == {'ok': True, 'latex': 'x^{2}'}

    def test_latex_error(self, client):
        response = client.post('/api/latex', json={'expression': '2*(x'})
        assert response.status_code == 400


class TestAccountsAndHistory:

    def test_history_requires_login(self, client):
        response = client.get('/api/history')
        assert response.status_code == 401
        assert response.get_json()['ok'] is False

    def test_register_validation(self, client):
        assert client.post('/api/register', json={'username': 'a', 'password': 'secret123'}).status_code == 400
        assert client.post('/api/register', json={'username': 'ada', 'password': '123'}).status_code == 400

    def test_duplicate_username(self, client):
        assert client.post('/api/register', json={'username': 'ada', 'password': 'secret123'}).status_code == 201
        assert client.post('/api/register', json={'username': 'ada', 'password': 'secret123'}).status_code == 400

    def test_wrong_password(self, client):
        client.post('/api/register', json={'username': 'ada', 'password': 'secret123'})
        response = client.post('/api/login', json={'username': 'ada', 'password': 'wrong'})
        assert response.status_code == 401

    def test_computations_are_recorded(self, client):
        assert register_and_login(client).status_code == 200
        client.post('/api/derivative', json={'expression': 'x^2'})
        client.post('/api/limit', json={'expression': 'sin(x)/x', 'point': 0})

        history = client.get('/api/history').get_json()
        assert len(history) == 2
        assert {entry['kind'] for entry in history} == {'derivative', 'limit'}
        limit_entry = next(entry for entry in history if entry['kind'] == 'limit')
        assert limit_entry['result'] == '1'
        assert limit_entry['steps']

    def test_failed_computations_are_not_recorded(self, client):
        register_and_login(client)
        client.post('/api/derivative', json={'expression': '2*(x'})
        assert client.get('/api/history').get_json() == []

    def test_clear_history(self, client):
        register_and_login(client)
        client.post('/api/derivative', json={'expression': 'x^2'})
        response = client.delete('/api/history')
        assert response.get_json()['ok'] is True
        assert client.get('/api/history').get_json() == []

    def test_logout(self, client):
        register_and_login(client)
        assert client.post('/api/logout').get_json()['ok'] is True
        assert client.get('/api/history').status_code == 401
