from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='CurrencyRate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('currency', models.CharField(help_text="Currency code, e.g. 'USD'. One row per code.", max_length=8, unique=True)),
                ('factor', models.DecimalField(decimal_places=6, help_text='Reference-currency units per one unit of this currency', max_digits=18)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Currency Rate',
                'verbose_name_plural': 'Currency Rates',
                'db_table': 'currency_rate',
                'ordering': ['currency'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('factor__gt', 0)), name='currency_rate_factor_positive'),
                ],
            },
        ),
    ]
