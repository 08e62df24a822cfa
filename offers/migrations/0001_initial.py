from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Offer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('website_link', models.URLField(blank=True, default='', max_length=500)),
                ('price', models.DecimalField(decimal_places=2, help_text='Price for the whole term, in `currency`', max_digits=14)),
                ('currency', models.CharField(db_index=True, max_length=8)),
                ('term_months', models.PositiveIntegerField(help_text='Contract length in months')),
                ('bandwidth', models.DecimalField(decimal_places=3, help_text='Monthly bandwidth allotment in TB', max_digits=12)),
                ('price_in_reference', models.DecimalField(decimal_places=8, default=0, max_digits=24)),
                ('monthly_cost', models.DecimalField(decimal_places=8, default=0, max_digits=24)),
                ('cost_per_bandwidth_unit', models.DecimalField(decimal_places=8, default=0, max_digits=24)),
                ('cost_per_small_unit', models.DecimalField(decimal_places=8, default=0, max_digits=24)),
                ('relative_score', models.DecimalField(decimal_places=8, default=0, max_digits=24)),
                ('is_reference', models.BooleanField(db_index=True, default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Hosting Offer',
                'verbose_name_plural': 'Hosting Offers',
                'db_table': 'hosting_offer',
                'ordering': ['-created_at', '-id'],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('is_reference', True)), fields=('is_reference',), name='single_reference_offer'),
                    models.CheckConstraint(condition=models.Q(('price__gt', 0)), name='offer_price_positive'),
                    models.CheckConstraint(condition=models.Q(('term_months__gt', 0)), name='offer_term_positive'),
                    models.CheckConstraint(condition=models.Q(('bandwidth__gt', 0)), name='offer_bandwidth_positive'),
                ],
            },
        ),
    ]
