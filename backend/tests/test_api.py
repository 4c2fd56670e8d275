# Overview: Pytest coverage for the HTTP contract (auth, products, stock, transactions).

"""
API Tests

Exercise the blueprints through the Flask test client: status codes,
response shapes, role checks, and tenant scoping from the session token.
"""

from conftest import auth_headers, get_auth_token, token_for, PASSWORD


class TestAuth:
    def test_login_and_logout(self, client, tenant_a, admin_a):
        token = get_auth_token(client, "KOPI", "admin_a")
        assert token

        me = client.get('/api/auth/me', headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json["user"]["username"] == "admin_a"

        out = client.post('/api/auth/logout', headers=auth_headers(token))
        assert out.status_code == 200

        again = client.get('/api/products', headers=auth_headers(token))
        assert again.status_code == 401

    def test_login_wrong_tenant_code(self, client, tenant_a, tenant_b, admin_a):
        response = client.post('/api/auth/login', json={
            'tenant_code': 'ROTI', 'username': 'admin_a', 'password': PASSWORD,
        })
        assert response.status_code == 401
        assert response.json["success"] is False

    def test_login_missing_fields(self, client, db_session):
        response = client.post('/api/auth/login', json={'username': 'x'})
        assert response.status_code == 400
        assert "tenant_code" in response.json["errors"]

    def test_requires_token(self, client, db_session):
        assert client.get('/api/products').status_code == 401
        assert client.get('/api/products', headers=auth_headers("bogus")).status_code == 401


class TestProductsApi:
    def test_list_shape(self, client, admin_headers, product_a, product_a2):
        response = client.get('/api/products?sortBy=name&sortOrder=asc&limit=1', headers=admin_headers)

        assert response.status_code == 200
        body = response.json
        assert body["totalCount"] == 2
        assert body["currentPage"] == 1
        assert body["totalPages"] == 2
        assert [p["name"] for p in body["products"]] == ["Kopi Susu"]

    def test_list_rejects_unknown_sort(self, client, admin_headers):
        response = client.get('/api/products?sortBy=password_hash', headers=admin_headers)
        assert response.status_code == 400
        assert "sort_by" in response.json["errors"]

    def test_list_is_scoped_to_token_tenant(self, client, admin_headers, product_a, product_b):
        response = client.get('/api/products', headers=admin_headers)
        assert [p["name"] for p in response.json["products"]] == ["Kopi Susu"]

    def test_get_other_tenant_product_is_404(self, client, admin_headers, product_b):
        assert client.get(f'/api/products/{product_b.id}', headers=admin_headers).status_code == 404

    def test_create_update_delete(self, client, admin_headers, brand_a):
        created = client.post('/api/products', headers=admin_headers, json={
            'name': 'Es Kopi', 'sku': 'ES-001', 'price': 22000, 'stock': 12, 'brand_id': brand_a.id,
        })
        assert created.status_code == 201
        product_id = created.json["id"]
        assert created.json["brand"]["name"] == "Kapal Api"
        assert created.json["min_stock"] == 5

        updated = client.put(f'/api/products/{product_id}', headers=admin_headers, json={'price': 23000})
        assert updated.status_code == 200
        assert updated.json["price"] == 23000
        assert updated.json["stock"] == 12

        deleted = client.delete(f'/api/products/{product_id}', headers=admin_headers)
        assert deleted.status_code == 200
        assert client.get(f'/api/products/{product_id}', headers=admin_headers).status_code == 404

    def test_update_rejects_stock_field(self, client, admin_headers, product_a):
        response = client.put(f'/api/products/{product_a.id}', headers=admin_headers, json={'stock': 1})
        assert response.status_code == 400
        assert "stock" in response.json["errors"]

    def test_create_validation_errors(self, client, admin_headers):
        response = client.post('/api/products', headers=admin_headers, json={'name': '', 'price': 10.5})
        assert response.status_code == 400
        errors = response.json["errors"]
        assert "name" in errors
        assert "sku" in errors
        assert "price" in errors

    def test_duplicate_sku_is_409(self, client, admin_headers, product_a):
        response = client.post('/api/products', headers=admin_headers, json={
            'name': 'Lagi', 'sku': 'KOPI-001', 'price': 1,
        })
        assert response.status_code == 409

    def test_cashier_cannot_write(self, client, cashier_headers, product_a):
        response = client.put(f'/api/products/{product_a.id}', headers=cashier_headers, json={'price': 1})
        assert response.status_code == 403

        listing = client.get('/api/products', headers=cashier_headers)
        assert listing.status_code == 200

    def test_bulk_create_and_delete(self, client, admin_headers):
        created = client.post('/api/products/bulk', headers=admin_headers, json={'products': [
            {'name': 'A', 'sku': 'A-1', 'price': 1000},
            {'name': 'B', 'sku': 'B-1', 'price': 2000},
        ]})
        assert created.status_code == 201
        assert created.json["count"] == 2
        ids = [p["id"] for p in created.json["products"]]

        count = client.get('/api/products/count', headers=admin_headers)
        assert count.json == {"count": 2}

        deleted = client.delete('/api/products/bulk', headers=admin_headers, json={'productIds': ids})
        assert deleted.status_code == 200
        assert deleted.json["count"] == 2

    def test_bulk_create_reports_item_errors(self, client, admin_headers):
        response = client.post('/api/products/bulk', headers=admin_headers, json={'products': [
            {'name': 'A', 'sku': 'A-1', 'price': 1000},
            {'name': 'B', 'price': -1},
        ]})
        assert response.status_code == 400
        assert "products[1].sku" in response.json["errors"]
        assert "products[1].price" in response.json["errors"]

    def test_bulk_update(self, client, admin_headers, product_a, product_a2):
        response = client.put('/api/products/bulk', headers=admin_headers, json={'updates': [
            {'productId': product_a.id, 'data': {'price': 1}},
            {'productId': product_a2.id, 'data': {'is_active': False}},
        ]})
        assert response.status_code == 200
        assert response.json["count"] == 2

        inactive = client.get('/api/products?is_active=false', headers=admin_headers)
        assert [p["id"] for p in inactive.json["products"]] == [product_a2.id]

    def test_by_category_and_brand(self, client, admin_headers, brand_a, category_a, product_a, product_a2):
        by_category = client.get(f'/api/products/category/{category_a.id}', headers=admin_headers)
        by_brand = client.get(f'/api/products/brand/{brand_a.id}', headers=admin_headers)
        assert [p["id"] for p in by_category.json["products"]] == [product_a.id]
        assert by_brand.json["totalCount"] == 1


class TestStockApi:
    def test_low_stock_scenario(self, client, admin_headers, tenant_a):
        created = client.post('/api/products', headers=admin_headers, json={
            'name': 'Gula', 'sku': 'GULA-1', 'price': 14000, 'stock': 3, 'min_stock': 5,
        })
        product_id = created.json["id"]

        low = client.get('/api/products?low_stock=true', headers=admin_headers)
        assert [p["id"] for p in low.json["products"]] == [product_id]
        assert low.json["products"][0]["is_low_stock"] is True

        response = client.post('/api/stock', headers=admin_headers, json={
            'productId': product_id, 'quantity': 10, 'operation': 'add',
        })
        assert response.status_code == 200
        assert response.json["product"]["stock"] == 13

        low = client.get('/api/products?low_stock=true', headers=admin_headers)
        assert low.json["totalCount"] == 0

    def test_subtract_below_zero_is_400(self, client, admin_headers, product_a):
        response = client.post('/api/stock', headers=admin_headers, json={
            'productId': product_a.id, 'quantity': 21, 'operation': 'subtract',
        })
        assert response.status_code == 400

        product = client.get(f'/api/products/{product_a.id}', headers=admin_headers)
        assert product.json["stock"] == 20

    def test_unknown_product_is_404(self, client, admin_headers):
        response = client.post('/api/stock', headers=admin_headers, json={'productId': 999999, 'quantity': 1})
        assert response.status_code == 404

    def test_movements_record_adjustments(self, client, admin_a, admin_headers, product_a):
        client.post('/api/stock', headers=admin_headers, json={
            'productId': product_a.id, 'quantity': 5, 'operation': 'add', 'notes': 'kiriman pagi',
        })
        client.post('/api/stock', headers=admin_headers, json={
            'productId': product_a.id, 'quantity': 99, 'operation': 'subtract',
        })

        response = client.get(f'/api/stock/{product_a.id}/movements', headers=admin_headers)
        assert response.status_code == 200
        movements = response.json["data"]
        assert len(movements) == 1
        assert movements[0]["movement_type"] == "IN"
        assert (movements[0]["before_qty"], movements[0]["after_qty"]) == (20, 25)
        assert movements[0]["notes"] == "kiriman pagi"
        assert movements[0]["created_by"] == admin_a.id

    def test_movements_admin_only(self, client, cashier_headers, product_a):
        response = client.get(f'/api/stock/{product_a.id}/movements', headers=cashier_headers)
        assert response.status_code == 403

    def test_movements_unknown_product_is_404(self, client, admin_headers):
        response = client.get('/api/stock/999999/movements', headers=admin_headers)
        assert response.status_code == 404


class TestTransactionsApi:
    def _create(self, client, headers, product_a, product_a2):
        response = client.post('/api/transactions', headers=headers, json={'items': [
            {'productId': product_a.id, 'quantity': 2},
            {'productId': product_a2.id, 'quantity': 2},
        ]})
        assert response.status_code == 201
        return response.json["data"]

    def test_complete_with_change(self, client, cashier_headers, product_a, product_a2):
        txn = self._create(client, cashier_headers, product_a, product_a2)
        assert txn["total"] == 45000

        response = client.post(f'/api/transactions/{txn["id"]}/complete', headers=cashier_headers, json={
            'paymentAmount': 50000, 'paymentMethod': 'CASH',
        })

        assert response.status_code == 200
        body = response.json
        assert body["success"] is True
        assert body["message"]
        assert body["data"]["paymentAmount"] == 50000
        assert body["data"]["changeAmount"] == 5000
        assert body["data"]["status"] == "COMPLETED"

    def test_underpayment_returns_minimum_required(self, client, cashier_headers, product_a, product_a2):
        txn = self._create(client, cashier_headers, product_a, product_a2)

        response = client.post(f'/api/transactions/{txn["id"]}/complete', headers=cashier_headers, json={
            'paymentAmount': 40000,
        })

        assert response.status_code == 400
        assert response.json["success"] is False
        assert response.json["minimumRequired"] == 45000

        detail = client.get(f'/api/transactions/{txn["id"]}', headers=cashier_headers)
        assert detail.json["status"] == "PENDING"

    def test_double_completion_is_409(self, client, cashier_headers, product_a, product_a2):
        txn = self._create(client, cashier_headers, product_a, product_a2)
        url = f'/api/transactions/{txn["id"]}/complete'

        assert client.post(url, headers=cashier_headers, json={'paymentAmount': 50000}).status_code == 200
        second = client.post(url, headers=cashier_headers, json={'paymentAmount': 60000})
        assert second.status_code == 409

        detail = client.get(f'/api/transactions/{txn["id"]}', headers=cashier_headers)
        assert detail.json["change_amount"] == 5000

    def test_float_amount_rejected(self, client, cashier_headers, product_a, product_a2):
        txn = self._create(client, cashier_headers, product_a, product_a2)
        response = client.post(f'/api/transactions/{txn["id"]}/complete', headers=cashier_headers, json={
            'paymentAmount': 45000.5,
        })
        assert response.status_code == 400
        assert "payment_amount" in response.json["errors"]

    def test_cashier_cannot_see_other_cashiers_transactions(
        self, client, cashier_headers, cashier_a2, admin_headers, product_a, product_a2
    ):
        txn = self._create(client, cashier_headers, product_a, product_a2)
        other_headers = auth_headers(token_for(cashier_a2))

        assert client.get(f'/api/transactions/{txn["id"]}', headers=other_headers).status_code == 404
        assert client.post(
            f'/api/transactions/{txn["id"]}/complete', headers=other_headers, json={'paymentAmount': 50000}
        ).status_code == 404
        assert client.get('/api/transactions', headers=other_headers).json["pagination"]["total"] == 0

        # Admins see the whole tenant
        assert client.get(f'/api/transactions/{txn["id"]}', headers=admin_headers).status_code == 200
        assert client.get('/api/transactions', headers=admin_headers).json["pagination"]["total"] == 1

    def test_insufficient_stock_is_400(self, client, cashier_headers, product_a):
        response = client.post('/api/transactions', headers=cashier_headers, json={'items': [
            {'productId': product_a.id, 'quantity': 21},
        ]})
        assert response.status_code == 400
        assert "Insufficient stock" in response.json["message"]

    def test_item_validation(self, client, cashier_headers):
        response = client.post('/api/transactions', headers=cashier_headers, json={'items': [
            {'productId': 1, 'quantity': 0},
        ]})
        assert response.status_code == 400
        assert "items[0].quantity" in response.json["errors"]

    def test_receipt(self, client, cashier_headers, product_a, product_a2):
        txn = self._create(client, cashier_headers, product_a, product_a2)
        url = f'/api/transactions/{txn["id"]}/receipt'

        assert client.get(url, headers=cashier_headers).status_code == 409

        client.post(f'/api/transactions/{txn["id"]}/complete', headers=cashier_headers, json={'paymentAmount': 50000})
        receipt = client.get(url, headers=cashier_headers)
        assert receipt.status_code == 200
        assert receipt.json["data"]["change_amount"] == 5000
        assert receipt.json["data"]["item_count"] == 4


class TestSystemApi:
    def test_health(self, client, db_session):
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.json["checks"]["database"]["status"] == "healthy"

    def test_cache_stats_admin_only(self, client, admin_headers, cashier_headers, product_a):
        client.get(f'/api/products/{product_a.id}', headers=admin_headers)
        client.get(f'/api/products/{product_a.id}', headers=admin_headers)

        stats = client.get('/api/cache/stats', headers=admin_headers)
        assert stats.status_code == 200
        assert stats.json["hits"] == 1
        assert stats.json["misses"] == 1

        assert client.get('/api/cache/stats', headers=cashier_headers).status_code == 403
