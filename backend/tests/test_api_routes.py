"""
End-to-end API tests: one cashier's day through HTTP.

open shift -> checkout -> return -> close with a difference -> supervisor
approval, plus the read endpoints the back office uses.
"""

import pytest

from conftest import (
    auth_headers,
    get_auth_token,
    make_carton_product,
    make_customer,
    make_product,
    make_user,
)


@pytest.fixture
def cashier_headers(client, cashier):
    return auth_headers(get_auth_token(client, 'cashier1'))


@pytest.fixture
def supervisor_headers(client, supervisor):
    return auth_headers(get_auth_token(client, 'spv1'))


def open_shift(client, headers, opening_cash=100000, terminal='POS-01'):
    return client.post('/api/cashier-shifts/open', headers=headers, json={
        'openingCash': opening_cash,
        'terminalName': terminal,
    })


class TestShiftEndpoints:
    def test_active_is_null_before_opening(self, client, cashier_headers):
        response = client.get('/api/cashier-shifts/active', headers=cashier_headers)
        assert response.status_code == 200
        assert response.json == {'shift': None, 'suspendedCount': 0}

    def test_open_then_active(self, client, cashier_headers):
        response = open_shift(client, cashier_headers)
        assert response.status_code == 201
        assert response.json['status'] == 'OPEN'
        assert response.json['openingCash'] == 100000
        assert response.json['terminalName'] == 'POS-01'

        active = client.get('/api/cashier-shifts/active', headers=cashier_headers).json
        assert active['shift']['id'] == response.json['id']

    def test_open_twice(self, client, cashier_headers):
        open_shift(client, cashier_headers)
        response = open_shift(client, cashier_headers, terminal='POS-02')
        assert response.status_code == 409
        assert response.json['code'] == 'SHIFT_ALREADY_ACTIVE'

    def test_open_rejects_unknown_fields(self, client, cashier_headers):
        response = client.post('/api/cashier-shifts/open', headers=cashier_headers, json={
            'openingCash': 0, 'terminalName': 'POS-01', 'drawer': 2,
        })
        assert response.status_code == 422

    def test_close_requires_note_on_difference(self, client, cashier_headers):
        open_shift(client, cashier_headers)
        response = client.post('/api/cashier-shifts/close', headers=cashier_headers, json={'actualCash': 90000})
        assert response.status_code == 400
        assert response.json['code'] == 'CLOSE_NOTE_REQUIRED'
        assert response.json['details'] == {'expectedCash': 100000, 'cashDifference': -10000}

    def test_summary_visible_to_owner_and_approver_only(self, client, cashier_headers, supervisor_headers, db_session):
        make_user('cashier2')
        other_headers = auth_headers(get_auth_token(client, 'cashier2'))
        shift_id = open_shift(client, cashier_headers).json['id']

        assert client.get(f'/api/cashier-shifts/{shift_id}/summary', headers=cashier_headers).status_code == 200
        assert client.get(f'/api/cashier-shifts/{shift_id}/summary', headers=supervisor_headers).status_code == 200
        assert client.get(f'/api/cashier-shifts/{shift_id}/summary', headers=other_headers).status_code == 403


class TestCashierDay:
    def test_full_day(self, client, cashier_headers, supervisor_headers):
        mie = make_carton_product(stock=200)
        teh = make_product(price='5000', stock=50)
        budi = make_customer(points=0)

        assert open_shift(client, cashier_headers).status_code == 201

        response = client.post('/api/sales/checkout', headers=cashier_headers, json={
            'items': [
                {'productId': mie.id, 'quantity': 1, 'unitType': 'CARTON', 'discount': 0},
                {'productId': teh.id, 'quantity': 4, 'unitType': 'PCS', 'discount': 0},
            ],
            'customerId': budi.id,
            'globalDiscount': 0,
            'paymentMethod': 'cash',
        })
        assert response.status_code == 201
        sale = response.json
        assert sale['finalAmount'] == 120000
        assert sale['pointsEarned'] == 12
        assert len(sale['items']) == 2

        response = client.post('/api/returns', headers=cashier_headers, json={
            'saleId': sale['id'],
            'items': [{'productId': teh.id, 'quantity': 2}],
            'reason': 'expired',
        })
        assert response.status_code == 201
        assert response.json['totalRefund'] == 10000
        assert response.json['pointsReversed'] == 1

        returns = client.get(f"/api/returns?sale_id={sale['id']}", headers=cashier_headers).json
        assert returns['count'] == 1

        # expected = 100000 + 120000 - 10000 = 210000, counted 350000
        response = client.post('/api/cashier-shifts/close', headers=cashier_headers, json={
            'actualCash': 350000,
            'closeNote': 'extra cash from the previous day',
        })
        assert response.status_code == 200
        shift = response.json['shift']
        assert response.json['summary']['expectedCash'] == 210000
        assert shift['cashDifference'] == 140000
        assert shift['approvalStatus'] == 'PENDING'

        response = client.post(f"/api/cashier-shifts/{shift['id']}/approve", headers=cashier_headers, json={})
        assert response.status_code == 403

        listed = client.get('/api/cashier-shifts?approvalStatus=PENDING', headers=supervisor_headers).json
        assert [s['id'] for s in listed['items']] == [shift['id']]

        response = client.post(f"/api/cashier-shifts/{shift['id']}/approve", headers=supervisor_headers, json={
            'approvalNote': 'verified with the safe log',
        })
        assert response.status_code == 200
        assert response.json['approvalStatus'] == 'APPROVED'
        assert response.json['approvedByName'] == 'Supervisor Satu'

        discrepancies = client.get('/api/reports/cash-discrepancies', headers=supervisor_headers).json
        assert discrepancies['items'][0]['shiftId'] == shift['id']

        transactions = client.get(f"/api/cashier-shifts/{shift['id']}/transactions", headers=cashier_headers).json
        assert sorted(row['kind'] for row in transactions['items']) == ['RETURN', 'SALE']

        assert client.post('/api/logout', headers=cashier_headers).status_code == 200

    def test_checkout_without_shift(self, client, cashier_headers):
        teh = make_product()
        response = client.post('/api/sales/checkout', headers=cashier_headers, json={
            'items': [{'productId': teh.id, 'quantity': 1}],
        })
        assert response.status_code == 409
        assert response.json['code'] == 'NO_ACTIVE_SHIFT'

    def test_insufficient_stock_details(self, client, cashier_headers):
        teh = make_product(stock=1)
        open_shift(client, cashier_headers)
        response = client.post('/api/sales/checkout', headers=cashier_headers, json={
            'items': [{'productId': teh.id, 'quantity': 2}],
        })
        assert response.status_code == 409
        assert response.json['code'] == 'INSUFFICIENT_STOCK'
        assert response.json['details']['availablePcs'] == 1

    def test_void_through_api(self, client, cashier_headers):
        teh = make_product(stock=10)
        open_shift(client, cashier_headers)
        sale = client.post('/api/sales/checkout', headers=cashier_headers, json={
            'items': [{'productId': teh.id, 'quantity': 3}],
        }).json

        response = client.delete(f"/api/sales/{sale['id']}", headers=cashier_headers)

        assert response.status_code == 200
        assert response.json['status'] == 'CANCELLED'
        product = client.get(f'/api/products/{teh.id}', headers=cashier_headers).json
        assert product['stock'] == 10

    def test_void_by_other_cashier_without_shift(self, client, cashier_headers):
        teh = make_product(stock=10)
        open_shift(client, cashier_headers)
        sale = client.post('/api/sales/checkout', headers=cashier_headers, json={
            'items': [{'productId': teh.id, 'quantity': 1}],
        }).json
        make_user('cashier2', 'cashier')
        other_headers = auth_headers(get_auth_token(client, 'cashier2'))

        response = client.delete(f"/api/sales/{sale['id']}", headers=other_headers)
        assert response.status_code == 409
        assert response.json['code'] == 'NO_ACTIVE_SHIFT'

        open_shift(client, other_headers, terminal='POS-02')
        response = client.delete(f"/api/sales/{sale['id']}", headers=other_headers)
        assert response.status_code == 403
        assert response.json['code'] == 'VOID_NOT_ALLOWED'
        assert client.get(f"/api/sales/{sale['id']}", headers=cashier_headers).json['status'] == 'COMPLETED'

    def test_supervisor_void_is_booked_to_their_shift(self, client, cashier_headers, supervisor_headers):
        teh = make_product(stock=10)
        open_shift(client, cashier_headers)
        sale = client.post('/api/sales/checkout', headers=cashier_headers, json={
            'items': [{'productId': teh.id, 'quantity': 1}],
        }).json
        spv_shift = open_shift(client, supervisor_headers, terminal='POS-SPV').json

        response = client.delete(f"/api/sales/{sale['id']}", headers=supervisor_headers)

        assert response.status_code == 200
        assert response.json['cancelledShiftId'] == spv_shift['id']


class TestSuspendedEndpoints:
    def test_park_blocks_close_until_recalled(self, client, cashier_headers):
        teh = make_product()
        open_shift(client, cashier_headers, opening_cash=0)

        response = client.post('/api/suspended-sales', headers=cashier_headers, json={
            'items': [{'productId': teh.id, 'quantity': 2}],
            'note': 'customer went to the ATM',
        })
        assert response.status_code == 201
        parked_id = response.json['id']

        active = client.get('/api/cashier-shifts/active', headers=cashier_headers).json
        assert active['suspendedCount'] == 1

        response = client.post('/api/cashier-shifts/close', headers=cashier_headers, json={'actualCash': 0})
        assert response.status_code == 409
        assert response.json['code'] == 'PENDING_SUSPENDED_SALES'

        recalled = client.post(f'/api/suspended-sales/{parked_id}/recall', headers=cashier_headers)
        assert recalled.status_code == 200
        assert recalled.json['items'][0]['quantity'] == 2

        response = client.post('/api/cashier-shifts/close', headers=cashier_headers, json={'actualCash': 0})
        assert response.status_code == 200


class TestCatalogEndpoints:
    def test_pos_products_split_stock(self, client, cashier_headers):
        make_carton_product(stock=85)

        items = client.get('/api/pos/products', headers=cashier_headers).json['items']

        assert items[0]['cartonEligible'] is True
        assert items[0]['stockCartons'] == 2
        assert items[0]['stockRemainderPcs'] == 5

    def test_barcode_lookup(self, client, cashier_headers):
        make_product(barcode='8991234567890')
        response = client.get('/api/products/barcode/8991234567890', headers=cashier_headers)
        assert response.status_code == 200
        assert response.json['barcode'] == '8991234567890'

        assert client.get('/api/products/barcode/000', headers=cashier_headers).status_code == 404

    def test_daily_report(self, client, cashier_headers):
        teh = make_product(price='5000')
        open_shift(client, cashier_headers)
        client.post('/api/sales/checkout', headers=cashier_headers, json={
            'items': [{'productId': teh.id, 'quantity': 3}],
        })

        report = client.get('/api/reports/daily', headers=cashier_headers).json

        assert report['transactions'] == 1
        assert report['itemsSold'] == 3
        assert report['revenue'] == 15000
        assert report['netRevenue'] == 15000


@pytest.fixture
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, 'admin1'))


class TestCatalogMaintenanceEndpoints:
    def test_delete_info_then_soft_delete(self, client, supervisor_headers):
        teh = make_product(stock=0)

        info = client.get(f'/api/products/{teh.id}/delete-info', headers=supervisor_headers)
        assert info.status_code == 200
        assert info.json['canHardDelete'] is True

        response = client.delete(f'/api/products/{teh.id}', headers=supervisor_headers)
        assert response.status_code == 200
        assert response.json['mode'] == 'soft'
        assert client.get(f'/api/products/{teh.id}', headers=supervisor_headers).json['deletedAt'] is not None

    def test_hard_delete_roles(self, client, supervisor_headers, admin_headers):
        teh = make_product(stock=0)

        response = client.delete(f'/api/products/{teh.id}?mode=hard', headers=supervisor_headers)
        assert response.status_code == 403
        assert response.json['code'] == 'HARD_DELETE_FORBIDDEN'

        assert client.delete(f'/api/products/{teh.id}?mode=hard', headers=admin_headers).status_code == 200
        assert client.get(f'/api/products/{teh.id}', headers=admin_headers).status_code == 404

    def test_cashier_cannot_delete(self, client, cashier_headers):
        teh = make_product(stock=0)
        assert client.delete(f'/api/products/{teh.id}', headers=cashier_headers).status_code == 403

    def test_delete_with_stock(self, client, admin_headers):
        teh = make_product(stock=4)
        response = client.delete(f'/api/products/{teh.id}', headers=admin_headers)
        assert response.status_code == 409
        assert response.json['code'] == 'PRODUCT_HAS_STOCK'

    def test_brand_rename_and_status(self, client, supervisor_headers):
        brand_id = client.post('/api/brands', headers=supervisor_headers, json={'name': 'Sosro'}).json['id']
        make_product(brand_id=brand_id)

        renamed = client.patch(f'/api/brands/{brand_id}', headers=supervisor_headers, json={'name': 'Sosro Group'})
        assert renamed.status_code == 200
        assert renamed.json['name'] == 'Sosro Group'

        blocked = client.patch(f'/api/brands/{brand_id}/status', headers=supervisor_headers, json={'status': 'INACTIVE'})
        assert blocked.status_code == 409
        assert blocked.json['code'] == 'BRAND_HAS_PRODUCTS'

    def test_category_status(self, client, supervisor_headers):
        category_id = client.post('/api/categories', headers=supervisor_headers, json={'name': 'Minuman'}).json['id']

        response = client.patch(f'/api/categories/{category_id}/status', headers=supervisor_headers,
                                json={'status': 'INACTIVE'})
        assert response.status_code == 200
        assert response.json['status'] == 'INACTIVE'

        bad = client.patch(f'/api/categories/{category_id}/status', headers=supervisor_headers, json={'status': 'GONE'})
        assert bad.status_code == 422


class TestBackOfficeReportEndpoints:
    def test_cashier_is_refused(self, client, cashier_headers):
        for path in ('/api/dashboard/overview', '/api/reports/summary', '/api/reports/sales',
                     '/api/reports/customers', '/api/reports/products', '/api/reports/returns'):
            assert client.get(path, headers=cashier_headers).status_code == 403, path

    def test_summary_and_sales(self, client, cashier_headers, supervisor_headers):
        teh = make_product(price='5000')
        open_shift(client, cashier_headers)
        client.post('/api/sales/checkout', headers=cashier_headers, json={
            'items': [{'productId': teh.id, 'quantity': 2}],
            'paymentMethod': 'qris',
        })

        summary = client.get('/api/reports/summary', headers=supervisor_headers).json
        assert summary['totalSales'] == 10000
        assert summary['totalTransactions'] == 1

        sales = client.get('/api/reports/sales?groupBy=month&paymentMethod=qris', headers=supervisor_headers).json
        assert sales['count'] == 1
        assert sales['items'][0]['totalSales'] == 10000

        none = client.get('/api/reports/sales?paymentMethod=cash', headers=supervisor_headers).json
        assert none == {'items': [], 'count': 0}

    def test_sales_report_validation(self, client, supervisor_headers):
        bad_group = client.get('/api/reports/sales?groupBy=quarter', headers=supervisor_headers)
        assert bad_group.status_code == 422

        bad_date = client.get('/api/reports/summary?start=yesterday', headers=supervisor_headers)
        assert bad_date.status_code == 422

    def test_other_reports(self, client, supervisor_headers):
        assert client.get('/api/reports/customers?limit=500', headers=supervisor_headers).json == {
            'topSpenders': [], 'totalPointOutstanding': 0,
        }
        assert client.get('/api/reports/products', headers=supervisor_headers).json == {
            'bestSelling': [], 'mostReturned': [],
        }
        assert client.get('/api/reports/returns', headers=supervisor_headers).json['returnRatePct'] == '0.00'

    def test_dashboard(self, client, cashier_headers, supervisor_headers):
        open_shift(client, cashier_headers, opening_cash=75000)

        response = client.get('/api/dashboard/overview?days=7&months=2', headers=supervisor_headers)

        assert response.status_code == 200
        assert response.json['summary']['activeShiftCount'] == 1
        assert response.json['summary']['activeExpectedCash'] == 75000
        assert len(response.json['charts']['dailySales']) == 7
        assert len(response.json['charts']['monthlySales']) == 2
