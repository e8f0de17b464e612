import datetime
from decimal import Decimal

from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Tenant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('is_active', models.BooleanField(default=True)),
                ('tenant_number', models.CharField(editable=False, max_length=50, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('phone', models.CharField(blank=True, max_length=20)),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive'), ('blacklisted', 'Blacklisted')], default='active', max_length=20)),
                ('notes', models.TextField(blank=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='property_tenant_created', to=settings.AUTH_USER_MODEL)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='property_tenant_updated', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='PDCCheque',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('is_active', models.BooleanField(default=True)),
                ('pdc_number', models.CharField(editable=False, max_length=50, unique=True)),
                ('cheque_number', models.CharField(max_length=50, validators=[django.core.validators.MinLengthValidator(3)])),
                ('bank_name', models.CharField(max_length=100)),
                ('cheque_date', models.DateField(help_text='Post-dated cheque date')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=15, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('lease_reference', models.CharField(blank=True, max_length=50)),
                ('installment_number', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('status', models.CharField(choices=[('RECEIVED', 'Received'), ('DUE', 'Due'), ('DEPOSITED', 'Deposited'), ('CLEARED', 'Cleared'), ('BOUNCED', 'Bounced'), ('CANCELLED', 'Cancelled'), ('REPLACED', 'Replaced'), ('WITHDRAWN', 'Withdrawn')], default='RECEIVED', max_length=20)),
                ('version', models.PositiveIntegerField(default=0)),
                ('received_date', models.DateField(default=datetime.date.today)),
                ('deposit_date', models.DateField(blank=True, null=True)),
                ('deposit_account', models.CharField(blank=True, help_text='Bank account deposited to', max_length=100)),
                ('cleared_date', models.DateField(blank=True, null=True)),
                ('clearing_reference', models.CharField(blank=True, max_length=100)),
                ('bounced_date', models.DateField(blank=True, null=True)),
                ('bounce_reason', models.CharField(blank=True, max_length=255)),
                ('notes', models.TextField(blank=True, max_length=500)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='property_pdccheque_created', to=settings.AUTH_USER_MODEL)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='property_pdccheque_updated', to=settings.AUTH_USER_MODEL)),
                ('replaced_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='property.pdccheque')),
                ('replaces', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='property.pdccheque')),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='pdc_cheques', to='property.tenant')),
            ],
            options={
                'ordering': ['cheque_date', 'id'],
                'indexes': [
                    models.Index(fields=['status'], name='idx_pdc_status'),
                    models.Index(fields=['cheque_date'], name='idx_pdc_cheque_date'),
                    models.Index(fields=['bank_name'], name='idx_pdc_bank_name'),
                    models.Index(fields=['status', 'cheque_date'], name='idx_pdc_status_cheque_date'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('cheque_number', 'tenant'), name='unique_pdc_cheque_per_tenant'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PDCWithdrawal',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('is_active', models.BooleanField(default=True)),
                ('withdrawal_number', models.CharField(editable=False, max_length=50, unique=True)),
                ('withdrawal_date', models.DateField()),
                ('reason', models.CharField(max_length=255)),
                ('replacement_method', models.CharField(blank=True, choices=[('BANK_TRANSFER', 'Bank Transfer'), ('CASH', 'Cash'), ('NEW_CHEQUE', 'New Cheque')], max_length=20)),
                ('transaction_reference', models.CharField(blank=True, max_length=100)),
                ('status_before', models.CharField(choices=[('RECEIVED', 'Received'), ('DUE', 'Due'), ('DEPOSITED', 'Deposited'), ('CLEARED', 'Cleared'), ('BOUNCED', 'Bounced'), ('CANCELLED', 'Cancelled'), ('REPLACED', 'Replaced'), ('WITHDRAWN', 'Withdrawn')], max_length=20)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='property_pdcwithdrawal_created', to=settings.AUTH_USER_MODEL)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='property_pdcwithdrawal_updated', to=settings.AUTH_USER_MODEL)),
                ('pdc', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='withdrawal', to='property.pdccheque')),
            ],
            options={
                'ordering': ['-withdrawal_date', '-id'],
                'indexes': [
                    models.Index(fields=['withdrawal_date'], name='idx_withdrawal_date'),
                    models.Index(fields=['reason'], name='idx_withdrawal_reason'),
                ],
            },
        ),
    ]
