import unittest
from datetime import date
from apitest import ApiTestCase
from Models import Invoice, FinanceTransaction, FeePayment


class FeeTestCase(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.day_scholar = self.make_student(name="Amina Nakato", class_level="P5")
        self.boarder = self.make_student(name="Brian Mugisha", class_level="P5", boarding_status="boarding")
        self.junior = self.make_student(name="Carol Achieng", class_level="P3")
        self.structure(fee_type="tuition", amount=500000)
        self.structure(fee_type="boarding", amount=300000, boarding_status="boarding")

    def structure(self, **overrides):
        body = {"class_level": "P5", "term": 1, "year": 2024}
        body.update(overrides)
        return self.assertStatus(self.client.post('/api/fees/structures', json=body), 201, "Fee structure created")

    def generate(self):
        response = self.client.post('/api/fees/invoices/generate',
                                    json={"term": 1, "year": 2024, "due_date": "2024-01-31"})
        return self.assertStatus(response, 200)

    def invoice_for(self, student_id):
        return self.db().query(Invoice).filter_by(student_id=student_id).one()

    def pay(self, amount, **overrides):
        body = {"student_id": self.day_scholar, "fee_type": "tuition", "term": 1, "year": 2024,
                "amount_paid": amount, "payment_method": "Mobile Money"}
        body.update(overrides)
        return self.client.post('/api/fees/payments', json=body)


class StructureTestCase(FeeTestCase):

    def test_duplicate_structure(self):
        response = self.client.post('/api/fees/structures', json={"class_level": "P5", "term": 1, "year": 2024,
                                                                  "fee_type": "tuition", "amount": 1})
        self.assertStatus(response, 409, "A fee structure for this class, fee type and period already exists")

    def test_negative_amount(self):
        response = self.client.post('/api/fees/structures', json={"class_level": "P5", "fee_type": "lunch",
                                                                  "year": 2024, "amount": -5})
        self.assertStatus(response, 400, "amount cannot be negative")

    def test_fractional_amount(self):
        response = self.client.post('/api/fees/structures', json={"class_level": "P5", "fee_type": "lunch",
                                                                  "year": 2024, "amount": 1500.5})
        self.assertStatus(response, 400, "amount must be a whole amount")

    def test_delete_is_soft(self):
        structures = self.read(self.client.get('/api/fees/structures?class_level=P5'))['structures']
        self.assertEqual(len(structures), 2)
        self.client.delete(f"/api/fees/structures/{structures[0]['id']}")
        self.assertEqual(len(self.read(self.client.get('/api/fees/structures'))['structures']), 1)

    def test_finance_roles_only(self):
        self.make_user("teacher", "teacher")
        self.assertStatus(self.login("teacher").get('/api/fees/structures'), 403, "Finance access required")
        self.make_user("bursar", "bursar")
        self.assertStatus(self.login("bursar").get('/api/fees/structures'), 200)


class InvoiceTestCase(FeeTestCase):

    def test_generate_invoices(self):
        data = self.generate()
        self.assertEqual((data['invoices_created'], data['invoices_skipped']), (2, 1))
        self.assertEqual(self.invoice_for(self.day_scholar).total_amount, 500000)
        boarder = self.invoice_for(self.boarder)
        self.assertEqual(boarder.total_amount, 800000)
        self.assertEqual(boarder.invoice_number, f"INV-2024-T1-{self.school_id}-{self.boarder:05d}")
        self.assertEqual(boarder.due_date, date(2024, 1, 31))
        self.assertEqual(len(boarder.items), 2)

    def test_generation_is_idempotent(self):
        self.generate()
        data = self.generate()
        self.assertEqual((data['invoices_created'], data['invoices_skipped']), (0, 3))

    def test_invoice_writes_ledger_debit(self):
        self.generate()
        debit = self.db().query(FinanceTransaction).filter_by(student_id=self.day_scholar).one()
        self.assertEqual((debit.transaction_type, debit.amount), ("debit", 500000))

    def test_no_structures(self):
        response = self.client.post('/api/fees/invoices/generate', json={"term": 2, "year": 2030})
        self.assertStatus(response, 400, "No fee structures found for this term/year")

    def test_scholarship_and_override(self):
        scholarship = self.read(self.client.post('/api/fees/scholarships', json={
            "name": "Bursary", "type": "percentage", "value": 50, "fee_types": ["tuition"]}))['scholarship']
        self.assertStatus(self.client.post(f"/api/fees/scholarships/{scholarship['id']}/assign",
                                           json={"student_id": self.day_scholar, "year": 2024}), 201)
        self.assertStatus(self.client.post('/api/fees/overrides', json={
            "student_id": self.boarder, "fee_type": "boarding", "custom_amount": 100000, "year": 2024}), 201)

        self.generate()
        invoice = self.invoice_for(self.day_scholar)
        self.assertEqual(invoice.total_amount, 250000)
        self.assertEqual(invoice.items[0].discount, 250000)
        self.assertEqual(self.invoice_for(self.boarder).total_amount, 600000)

    def test_percentage_scholarship_over_100(self):
        response = self.client.post('/api/fees/scholarships', json={"name": "X", "type": "percentage", "value": 120})
        self.assertStatus(response, 400, "A percentage scholarship cannot exceed 100")

    def test_list_and_detail(self):
        self.generate()
        data = self.read(self.client.get('/api/fees/invoices?limit=1'))
        self.assertEqual((data['total'], len(data['data'])), (2, 1))
        invoice_id = data['data'][0]['id']
        detail = self.read(self.client.get(f'/api/fees/invoices/{invoice_id}'))['invoice']
        self.assertTrue(detail['items'])

    def test_reminders(self):
        self.generate()
        invoice_id = self.invoice_for(self.day_scholar).id
        data = self.assertStatus(self.client.post(f'/api/fees/invoices/{invoice_id}/remind', json={}), 200)
        self.assertEqual(data['invoice']['reminder_count'], 1)
        data = self.read(self.client.post('/api/fees/invoices/remind', json={"min_balance": 600000}))
        self.assertEqual(data['sent'], 1)


class PaymentTestCase(FeeTestCase):

    def setUp(self):
        super().setUp()
        self.generate()

    def test_partial_payment_updates_invoice(self):
        data = self.assertStatus(self.pay(200000), 201, "Payment recorded")
        self.assertEqual(data['payment']['receipt_number'], f"REC-{date.today().year}-0001")
        self.assertEqual(data['payment']['balance'], 300000)
        invoice = self.invoice_for(self.day_scholar)
        self.assertEqual((invoice.amount_paid, invoice.balance, invoice.status), (200000, 300000, "partial"))

    def test_receipt_numbers_increment(self):
        self.pay(100000)
        self.assertEqual(self.read(self.pay(100000))['payment']['receipt_number'], f"REC-{date.today().year}-0002")

    def test_overpayment_is_rejected(self):
        self.assertStatus(self.pay(600000), 400, "OVERPAYMENT: Amount (600,000) exceeds invoice balance (500,000)")

    def test_invalid_amount_and_method(self):
        self.assertStatus(self.pay(0), 400, "amount_paid must be greater than zero")
        self.assertStatus(self.pay(1000, payment_method="Bitcoin"), 400,
                          "payment_method must be one of: Cash, Bank Deposit, Cheque, Mobile Money")
        self.assertStatus(self.pay(1000.25), 400, "amount_paid must be a whole amount")
        self.assertEqual(self.invoice_for(self.day_scholar).amount_paid, 0)

    def test_statement_running_balance(self):
        self.pay(200000)
        self.pay(100000)
        data = self.assertStatus(self.client.get(f'/api/fees/students/{self.day_scholar}/statement'), 200)
        self.assertEqual([t['running_balance'] for t in data['transactions']], [500000, 300000, 200000])
        self.assertEqual(data['balance'], 200000)
        self.assertIsInstance(data['balance'], int)

    def test_void_payment(self):
        payment_id = self.read(self.pay(200000))['payment']['id']
        url = f'/api/fees/payments/{payment_id}/void'
        self.assertStatus(self.client.post(url, json={"reason": "  "}), 400, "A reason is required to void a payment")
        self.assertStatus(self.client.post(url, json={"reason": "Bounced cheque"}), 200, "Payment voided")
        self.assertStatus(self.client.post(url, json={"reason": "again"}), 400, "Payment is already voided")

        invoice = self.invoice_for(self.day_scholar)
        self.assertEqual((invoice.amount_paid, invoice.balance, invoice.status), (0, 500000, "unpaid"))
        self.assertTrue(self.db().query(FinanceTransaction).filter_by(payment_id=payment_id).one().is_voided)
        self.assertEqual(self.read(self.client.get(f'/api/fees/students/{self.day_scholar}/statement'))['balance'],
                         500000)

    def test_void_unknown_payment(self):
        self.assertStatus(self.client.post('/api/fees/payments/42/void', json={"reason": "x"}), 404,
                          "Payment not found")

    def test_payment_without_invoice(self):
        data = self.assertStatus(self.pay(50000, student_id=self.junior, amount_due=80000), 201)
        self.assertIsNone(data['payment']['invoice_id'])
        self.assertEqual(data['payment']['balance'], 30000)

    def test_student_fees(self):
        self.pay(200000)
        data = self.assertStatus(self.client.get(f'/api/fees/students/{self.day_scholar}'), 200)
        self.assertEqual(data['balance'], 300000)
        self.assertEqual(len(data['payments']), 1)


class ReportTestCase(FeeTestCase):

    def setUp(self):
        super().setUp()
        self.generate()

    def test_debtors(self):
        self.pay(500000)
        data = self.assertStatus(self.client.get('/api/fees/debtors'), 200)
        self.assertEqual(data['total'], 1)
        debtor = data['data'][0]
        self.assertEqual(debtor['student']['id'], self.boarder)
        self.assertEqual(debtor['aging_bucket'], "90+")
        self.assertEqual(data['summary']['total_outstanding'], 800000)
        self.assertEqual(data['summary']['aging']['90+']['count'], 1)

    def test_summary(self):
        self.pay(325000)
        summary = self.assertStatus(self.client.get('/api/fees/summary?term=1&year=2024'), 200)['summary']
        self.assertEqual(summary['total_invoiced'], 1300000)
        self.assertEqual(summary['total_collected'], 325000)
        self.assertEqual(summary['collection_rate'], 25.0)
        self.assertEqual(self.db().query(FeePayment).count(), 1)


if __name__ == "__main__":
    unittest.main()
