# Overview: Pytest coverage for the HTTP surface through the Flask test client.

from app.models import Company


def scope_headers(company, user) -> dict:
    return {"X-Company-Id": str(company.id), "X-User-Id": str(user.id)}


class TestScope:

    def test_missing_headers(self, client, db_session):
        response = client.get('/api/transactions')
        assert response.status_code == 401

    def test_user_from_other_company(self, client, db_session, company_a, user_b):
        response = client.get('/api/transactions', headers=scope_headers(company_a, user_b))
        assert response.status_code == 404

    def test_inactive_company(self, client, db_session, company_a, user_a):
        company_a.is_active = False
        db_session.commit()

        response = client.get('/api/locations', headers=scope_headers(company_a, user_a))
        assert response.status_code == 404


class TestTransactionRoutes:

    def _create_sale(self, client, company, user, product, quantity=3):
        return client.post('/api/transactions', headers=scope_headers(company, user), json={
            'type': 'SALE',
            'items': [{'product_id': product.id, 'quantity': quantity, 'unit_price_cents': 1000}],
            'discount_cents': 500,
            'tax_cents': 200,
        })

    def test_sale_lifecycle(self, client, db_session, company_a, user_a, product_a):
        headers = scope_headers(company_a, user_a)

        created = self._create_sale(client, company_a, user_a, product_a)
        assert created.status_code == 201
        body = created.get_json()
        assert body['total_amount_cents'] == 2700
        txn_id = body['id']

        fetched = client.get(f'/api/transactions/{txn_id}', headers=headers)
        assert fetched.status_code == 200
        assert fetched.get_json()['items'][0]['quantity'] == 3

        patched = client.patch(f'/api/transactions/{txn_id}', headers=headers, json={'notes': 'gift wrap'})
        assert patched.status_code == 200
        assert patched.get_json()['notes'] == 'gift wrap'

        paid = client.post(f'/api/transactions/{txn_id}/payments', headers=headers,
                           json={'method': 'CASH', 'amount_cents': 2700})
        assert paid.status_code == 201

        again = client.post(f'/api/transactions/{txn_id}/payments', headers=headers,
                            json={'method': 'CASH', 'amount_cents': 1})
        assert again.status_code == 409

        assert client.delete(f'/api/transactions/{txn_id}', headers=headers).status_code == 409

    def test_delete_then_not_found(self, client, db_session, company_a, user_a, product_a):
        headers = scope_headers(company_a, user_a)
        txn_id = self._create_sale(client, company_a, user_a, product_a).get_json()['id']

        assert client.delete(f'/api/transactions/{txn_id}', headers=headers).status_code == 200
        assert client.delete(f'/api/transactions/{txn_id}', headers=headers).status_code == 404
        assert client.get(f'/api/transactions/{txn_id}', headers=headers).status_code == 404

    def test_insufficient_stock_is_conflict(self, client, db_session, company_a, user_a, product_a):
        response = self._create_sale(client, company_a, user_a, product_a, quantity=50)
        assert response.status_code == 409
        assert 'Insufficient stock' in response.get_json()['error']

    def test_validation_is_bad_request(self, client, db_session, company_a, user_a):
        response = client.post('/api/transactions', headers=scope_headers(company_a, user_a),
                               json={'type': 'SALE', 'items': []})
        assert response.status_code == 400

    def test_unknown_product_is_not_found(self, client, db_session, company_a, user_a):
        response = client.post('/api/transactions', headers=scope_headers(company_a, user_a), json={
            'type': 'SALE',
            'items': [{'product_id': 4242, 'quantity': 1, 'unit_price_cents': 1}],
        })
        assert response.status_code == 404

    def test_list_and_stats(self, client, db_session, company_a, user_a, product_a):
        headers = scope_headers(company_a, user_a)
        self._create_sale(client, company_a, user_a, product_a, quantity=1)
        self._create_sale(client, company_a, user_a, product_a, quantity=1)

        listed = client.get('/api/transactions?type=SALE&page=1&per_page=1', headers=headers).get_json()
        assert listed['count'] == 1
        assert listed['pagination']['total'] == 2

        stats = client.get('/api/transactions/stats', headers=headers).get_json()
        assert stats['total_sales'] == 2

    def test_bad_filter_value(self, client, db_session, company_a, user_a):
        response = client.get('/api/transactions?customer_id=abc', headers=scope_headers(company_a, user_a))
        assert response.status_code == 400


class TestLocationRoutes:

    def test_create_transfer_and_stats(self, client, db_session, company_a, user_a):
        headers = scope_headers(company_a, user_a)

        source = client.post('/api/locations', headers=headers,
                             json={'name': 'Main', 'code': 'main', 'current_stock': 40})
        destination = client.post('/api/locations', headers=headers,
                                  json={'name': 'Store', 'code': 'store', 'type': 'STORE', 'capacity': 20})
        assert source.status_code == 201
        assert destination.status_code == 201
        source_id = source.get_json()['id']
        destination_id = destination.get_json()['id']

        moved = client.post('/api/locations/transfer', headers=headers, json={
            'from_location_id': source_id, 'to_location_id': destination_id, 'quantity': 15,
        })
        assert moved.status_code == 201
        assert moved.get_json()['to_location']['current_stock'] == 15

        over = client.post('/api/locations/transfer', headers=headers, json={
            'from_location_id': source_id, 'to_location_id': destination_id, 'quantity': 6,
        })
        assert over.status_code == 409

        missing = client.post('/api/locations/transfer', headers=headers, json={'from_location_id': source_id})
        assert missing.status_code == 400

        stats = client.get('/api/locations/stats', headers=headers).get_json()
        assert stats['total_locations'] == 2

        movements = client.get(f'/api/movements?location_id={destination_id}', headers=headers).get_json()
        assert movements['count'] == 1

    def test_transfer_rejects_non_integer_ids(self, client, db_session, company_a, user_a):
        headers = scope_headers(company_a, user_a)
        source_id = client.post('/api/locations', headers=headers,
                                json={'name': 'Main', 'code': 'main', 'current_stock': 5}).get_json()['id']

        mixed = client.post('/api/locations/transfer', headers=headers, json={
            'from_location_id': source_id, 'to_location_id': str(source_id), 'quantity': 1,
        })
        assert mixed.status_code == 400
        assert 'to_location_id' in mixed.get_json()['error']

        text = client.post('/api/locations/transfer', headers=headers, json={
            'from_location_id': 'abc', 'to_location_id': source_id, 'quantity': 1,
        })
        assert text.status_code == 400

        moved = client.post(f'/api/locations/{source_id}/move', headers=headers, json={'parent_id': 'x'})
        assert moved.status_code == 400

    def test_hierarchy_move_and_delete(self, client, db_session, company_a, user_a):
        headers = scope_headers(company_a, user_a)
        parent_id = client.post('/api/locations', headers=headers, json={'name': 'WH', 'code': 'WH'}).get_json()['id']
        child_id = client.post('/api/locations', headers=headers,
                               json={'name': 'Bin', 'code': 'BIN', 'type': 'BIN', 'parent_id': parent_id}).get_json()['id']

        tree = client.get('/api/locations/hierarchy', headers=headers).get_json()['items']
        assert tree[0]['children'][0]['id'] == child_id

        cycle = client.post(f'/api/locations/{parent_id}/move', headers=headers, json={'parent_id': child_id})
        assert cycle.status_code == 400

        assert client.delete(f'/api/locations/{parent_id}', headers=headers).status_code == 409
        assert client.post(f'/api/locations/{child_id}/move', headers=headers, json={'parent_id': None}).status_code == 200
        assert client.delete(f'/api/locations/{parent_id}', headers=headers).status_code == 200
        assert client.get(f'/api/locations/{parent_id}', headers=headers).status_code == 404

    def test_duplicate_code_is_conflict(self, client, db_session, company_a, user_a):
        headers = scope_headers(company_a, user_a)
        client.post('/api/locations', headers=headers, json={'name': 'A', 'code': 'SAME'})

        response = client.post('/api/locations', headers=headers, json={'name': 'B', 'code': 'same'})
        assert response.status_code == 409


class TestMovementRoutes:

    def test_verify_product(self, client, db_session, company_a, user_a, product_a):
        headers = scope_headers(company_a, user_a)
        client.post('/api/transactions', headers=headers, json={
            'type': 'SALE', 'items': [{'product_id': product_a.id, 'quantity': 2, 'unit_price_cents': 10}],
        })

        report = client.get(f'/api/movements/products/{product_a.id}/verify', headers=headers).get_json()
        assert report['ok'] is True
        assert report['current_stock'] == 8

        assert client.get('/api/movements/products/4242/verify', headers=headers).status_code == 404


class TestSystemRoutes:

    def test_health(self, client, db_session, company_a):
        response = client.get('/health')
        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == 'healthy'
        assert body['checks']['database']['details']['companies'] == db_session.query(Company).count()
