# Generated manually for the settlements app

import uuid
from decimal import Decimal
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('groups', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Expense',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=200)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, validators=[MinValueValidator(Decimal('0.01'))])),
                ('is_even_split', models.BooleanField(default=True)),
                ('phone_number', models.CharField(blank=True, max_length=32)),
                ('bank_account', models.CharField(blank=True, max_length=64)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('group', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='expenses', to='groups.group')),
                ('paid_by', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='expenses_paid', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'expenses',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='ExpenseBeneficiary',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('share', models.DecimalField(decimal_places=2, max_digits=12, validators=[MinValueValidator(Decimal('0.00'))])),
                ('position', models.PositiveIntegerField(default=0)),
                ('expense', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='beneficiaries', to='settlements.expense')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='expense_shares', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'expense_beneficiaries',
                'ordering': ['position'],
            },
        ),
        migrations.CreateModel(
            name='Settlement',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, validators=[MinValueValidator(Decimal('0.01'))])),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('paid', 'Paid')], default='pending', max_length=20)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('creditor', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='settlement_credits', to=settings.AUTH_USER_MODEL)),
                ('debtor', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='settlement_debts', to=settings.AUTH_USER_MODEL)),
                ('group', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='settlements', to='groups.group')),
                ('paid_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='confirmed_settlements', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'settlements',
                'ordering': ['created_at'],
            },
        ),
        migrations.CreateModel(
            name='MemberBalance',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('group', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='member_balances', to='groups.group')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='group_balances', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'member_balances',
            },
        ),
        # Indexes for Expense
        migrations.AddIndex(
            model_name='expense',
            index=models.Index(fields=['group', 'created_at'], name='expenses_group_i_2b7e5a_idx'),
        ),
        migrations.AddIndex(
            model_name='expense',
            index=models.Index(fields=['paid_by', 'created_at'], name='expenses_paid_by_9c1d3f_idx'),
        ),
        # Indexes for Settlement
        migrations.AddIndex(
            model_name='settlement',
            index=models.Index(fields=['group', 'status'], name='settlement_group_i_4e8a2c_idx'),
        ),
        migrations.AddIndex(
            model_name='settlement',
            index=models.Index(fields=['debtor', 'status'], name='settlement_debtor_6f1b9d_idx'),
        ),
        migrations.AddIndex(
            model_name='settlement',
            index=models.Index(fields=['creditor', 'status'], name='settlement_credito_0c5e7b_idx'),
        ),
        # Unique constraints
        migrations.AlterUniqueTogether(
            name='expensebeneficiary',
            unique_together={('expense', 'user')},
        ),
        migrations.AlterUniqueTogether(
            name='memberbalance',
            unique_together={('group', 'user')},
        ),
        migrations.AddConstraint(
            model_name='settlement',
            constraint=models.UniqueConstraint(
                condition=models.Q(status='pending'),
                fields=('group', 'debtor', 'creditor'),
                name='unique_pending_settlement_per_pair',
            ),
        ),
    ]
