# Generated manually - Add the duplicate_charge reason for unmatched payments

from django.db import migrations, models


class Migration(migrations.Migration):
    """
    Allow UnmatchedPayment.reason to record a charge whose gateway reference
    is already stored on a different Transaction.
    """

    dependencies = [
        ("payments", "0002_add_settlement_schedules"),
    ]

    operations = [
        migrations.AlterField(
            model_name="unmatchedpayment",
            name="reason",
            field=models.CharField(
                choices=[
                    ("no_match", "No Matching Transaction"),
                    ("ambiguous", "Multiple Candidate Transactions"),
                    ("product_already_sold", "Product Already Sold"),
                    ("not_pending", "Transaction No Longer Pending"),
                    ("amount_mismatch", "Amount Below Price"),
                    ("duplicate_charge", "Charge Owned By Another Transaction"),
                ],
                db_index=True,
                help_text="Why the payment was not applied",
                max_length=30,
            ),
        ),
    ]
